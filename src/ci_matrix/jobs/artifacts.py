"""
Write-once artifact store.

Jobs hand data to each other only through named artifacts: the linux build
uploads 'release-binary', and every WPT shard must fetch it before it
starts. Each name can be written once.

Layout on disk:
    {root}/{name}/...files (paths kept relative to the upload base dir)
"""

import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Union


class ArtifactError(RuntimeError):
    pass


class ArtifactExistsError(ArtifactError):
    """An artifact with this name has already been written."""


class ArtifactNotFoundError(ArtifactError):
    """No artifact with this name has been written."""


class ArtifactStore:
    """
    Named-blob storage in a local directory.

    Example:
        store = ArtifactStore('ci-output/artifacts')
        store.put('release-binary', ['target.tar.gz'], base_dir='.')
        store.fetch('release-binary', 'shard-7/release-binary')
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path(self, name: str) -> Path:
        if not name or '/' in name or '\\' in name or name in ('.', '..'):
            raise ArtifactError(f"Invalid artifact name: {name!r}")
        return self.root / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_dir()

    def put(
        self,
        name: str,
        paths: Iterable[Union[str, Path]] = (),
        base_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        """
        Store files under a new artifact name.

        Args:
            name: Artifact name (must not exist yet)
            paths: Files or directories to copy in
            base_dir: Paths are stored relative to this directory when
                they are inside it; otherwise only their basename is kept

        Returns:
            Artifact directory
        """
        target = self.path(name)
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            target.mkdir()
        except FileExistsError:
            raise ArtifactExistsError(f"Artifact '{name}' already exists") from None

        try:
            self._copy_in(name, target, paths, base_dir)
        except Exception:
            shutil.rmtree(target, ignore_errors=True)
            raise

        return target

    def _copy_in(self, name, target, paths, base_dir):
        base_dir = Path(base_dir) if base_dir is not None else None
        for source in paths:
            source = Path(source)
            if base_dir is not None and not source.is_absolute():
                source = base_dir / source
            if not source.exists():
                raise FileNotFoundError(f"Cannot upload missing path to '{name}': {source}")

            rel = Path(source.name)
            if base_dir is not None:
                try:
                    rel = source.resolve().relative_to(base_dir.resolve())
                except ValueError:
                    pass

            dest = target / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, dest)
            else:
                shutil.copy2(source, dest)

    def fetch(self, name: str, dest: Union[str, Path]) -> Path:
        """Copy an artifact's contents into dest (created if needed)."""
        source = self.path(name)
        if not source.is_dir():
            raise ArtifactNotFoundError(f"Artifact '{name}' not found in {self.root}")

        dest = Path(dest)
        shutil.copytree(source, dest, dirs_exist_ok=True)
        return dest

    def files(self, name: str) -> List[Path]:
        """All files of an artifact, sorted."""
        source = self.path(name)
        if not source.is_dir():
            raise ArtifactNotFoundError(f"Artifact '{name}' not found in {self.root}")
        return sorted(p for p in source.rglob('*') if p.is_file())

    def clear(self) -> int:
        """Remove every artifact. Returns the number removed."""
        names = self.list()
        for name in names:
            shutil.rmtree(self.root / name)
        return len(names)

    def list(self, prefix: str = '') -> List[str]:
        """Artifact names starting with prefix, sorted."""
        if not self.root.exists():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_dir() and p.name.startswith(prefix)
        )
