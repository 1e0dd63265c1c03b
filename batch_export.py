"""
Batch loader for classic .peo models
Loads every model under a data root into one ModelCache and exports its textures as PNG
"""
import sys
from pathlib import Path

from PIL import Image

from classic.classic_loader import TextureList
from classic.config import ClassicConfig
from classic.debug_console import DebugConsole
from classic.model_cache import ModelCache


class ClassicBatchExporter:
    """Loads classic models in bulk and writes the decoded textures out"""

    DEFAULT_OUTPUT = "output"

    def __init__(self, config: ClassicConfig, output_folder=None):
        if config.data_root is None:
            raise ValueError("No data root given (pass one or set HWC_DATA)")
        self.config = config
        self.data_root = Path(config.data_root)
        if not self.data_root.is_dir():
            raise FileNotFoundError(f"Data root not found: {self.data_root}")

        self.output_folder = Path(output_folder or self.DEFAULT_OUTPUT)
        self.output_folder.mkdir(parents=True, exist_ok=True)

        self.fs = config.filesystem()
        self.texture_list = TextureList.load(self.fs)
        self.cache = ModelCache()

    def find_models(self):
        return sorted(p.relative_to(self.data_root) for p in self.data_root.rglob("*.peo"))

    def load_model(self, relative_path):
        """Load one model into the shared cache"""
        try:
            print(f"Processing: {relative_path.as_posix()}")
            index = self.cache.load_classic_model(
                self.fs,
                relative_path.as_posix(),
                split_atlases=self.config.split_atlases,
                texture_list=self.texture_list,
            )
            model = self.cache.models[index]
            vertex_count = sum(m.vertex_count for m in model.meshes)

            if not model.meshes:
                print("  Warning: No meshes found")
                return False

            print(f"  [OK] {len(model.nodes)} nodes, {len(model.meshes)} meshes, {vertex_count} vertices")
            return True

        except Exception as e:
            print(f"  [ERROR] {e}")
            import traceback
            traceback.print_exc()
            return False

    def export_textures(self):
        """Write every cached texture to the output folder"""
        written = 0
        for index, texture in enumerate(self.cache.textures):
            output_path = self.output_folder / f"texture_{index:03d}.png"
            mode = "RGBA" if texture.has_alpha else "RGB"
            image = Image.fromarray(texture.rgba).convert(mode)
            image.save(output_path, "PNG")
            written += 1
        return written

    def batch_process(self):
        """Process all models under the data root"""
        models = self.find_models()

        if not models:
            print(f"No PEO files found in {self.data_root}")
            return

        print(f"Found {len(models)} PEO files")
        print()

        success_count = 0
        for idx, model_path in enumerate(models, 1):
            print(f"[{idx}/{len(models)}] ", end="")
            if self.load_model(model_path):
                success_count += 1

        written = self.export_textures()

        print(f"\n{'=' * 60}")
        print(f"Completed: {success_count}/{len(models)} files")
        print(
            f"Cache: {len(self.cache.vertices)} vertices, {len(self.cache.materials)} materials, "
            f"{written} textures written to {self.output_folder}"
        )
        print(f"{'=' * 60}")


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Batch load classic models and export their textures")
    parser.add_argument("data_root", nargs="?", default=None,
                        help="Classic data root (default: $HWC_DATA)")
    parser.add_argument("output_folder", nargs="?", default=None,
                        help=f"Folder to save PNG textures (default: {ClassicBatchExporter.DEFAULT_OUTPUT})")
    parser.add_argument("--big", "-b", action="append", default=None,
                        help="BIG archive to search after the data root (repeatable, default: $HW_BIG)")
    parser.add_argument("--split-atlases", action="store_true",
                        help="Cut packed texture sheets into separate textures")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print loader trace output")

    args = parser.parse_args(argv)

    config = ClassicConfig.from_env()
    if args.data_root:
        config.data_root = Path(args.data_root)
    if args.big:
        config.big_files = [Path(b) for b in args.big]
    config.split_atlases = args.split_atlases
    config.verbose = args.verbose

    DebugConsole.configure(config.verbose)

    exporter = ClassicBatchExporter(config, args.output_folder)
    exporter.batch_process()
    return 0


if __name__ == "__main__":
    sys.exit(main())
