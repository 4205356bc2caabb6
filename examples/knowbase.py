"""Same pipeline shape as overmind, differing only by binary name."""

from pathlib import Path

from slimage.backends import LocalBackend
from slimage.bases import BaseImageStore
from slimage.packages import RepositoryInstaller
from slimage.presets import get_preset


def build_knowbase_image() -> None:
    recipe = get_preset("knowbase", build_dir=Path("build"))
    backend = LocalBackend(
        store=BaseImageStore(Path("bases")),
        installer=RepositoryInstaller(Path("packages")),
        cache_dir=Path(".slimage-cache"),
    )
    result = recipe.bake("../knowbase", backend=backend)
    print(result.image_ref)


if __name__ == "__main__":
    build_knowbase_image()
