"""Mesh-instance cache: share one loaded Mesh per source path."""

from __future__ import annotations

import threading
import weakref
from collections.abc import Callable
from pathlib import Path

from atlascache.config import LightmapSettings
from atlascache.importer import MeshImporter
from atlascache.mesh import Mesh, load_mesh
from atlascache.packer import AtlasPacker

LIGHTMAP_KEY_SUFFIX = "_lightmap"


class MeshRegistry:
    """Weakly holds loaded meshes so repeated loads of a path share one object.

    An entry lives as long as some caller keeps the Mesh alive; after that the
    next request loads it again. Each key has its own build lock, so two
    threads asking for the same key never both run the loader, while loads of
    different keys proceed in parallel. The registry lock only guards the
    dictionaries and is never held while a loader runs.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: weakref.WeakValueDictionary[str, Mesh] = weakref.WeakValueDictionary()
        self._build_locks: dict[str, threading.Lock] = {}

    @staticmethod
    def key_for(path: str | Path, generate_lightmap_uv: bool) -> str:
        key = str(Path(path).absolute())
        return key + LIGHTMAP_KEY_SUFFIX if generate_lightmap_uv else key

    def get_or_create(self, key: str, factory: Callable[[], Mesh]) -> Mesh:
        """Return the live mesh for ``key``, calling ``factory`` if there is none."""
        with self._lock:
            mesh = self._entries.get(key)
            if mesh is not None:
                return mesh
            build_lock = self._build_locks.setdefault(key, threading.Lock())

        with build_lock:
            # Another thread may have finished the build while we waited.
            with self._lock:
                mesh = self._entries.get(key)
            if mesh is None:
                mesh = factory()
                with self._lock:
                    self._entries[key] = mesh
            return mesh

    def get_or_load(
        self,
        path: str | Path,
        *,
        settings: LightmapSettings | None = None,
        importer: MeshImporter | None = None,
        packer: AtlasPacker | None = None,
    ) -> Mesh:
        settings = settings or LightmapSettings()
        key = self.key_for(path, settings.generate_lightmap_uv)
        return self.get_or_create(
            key,
            lambda: load_mesh(path, settings=settings, importer=importer, packer=packer),
        )

    def is_loaded(self, key: str) -> bool:
        with self._lock:
            return self._entries.get(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._build_locks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
