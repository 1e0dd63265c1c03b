from classic.binary_reader import BinaryReader, MemoryType
from classic.classic_fs import BigFile, ClassicFS
from classic.classic_loader import TextureList, load_classic_model
from classic.config import ClassicConfig
from classic.model_cache import NULL_INDEX, Material, Mesh, Model, ModelCache, Node, Texture, Vertex
from classic.texture_split import split_textures
