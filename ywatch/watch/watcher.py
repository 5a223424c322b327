# ywatch/watch/watcher.py

"""
Watch tree: the inotify watches of one generation
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from inotify_simple import INotify

from ..exceptions import WatchInstallError
from .events import build_raw_mask, describe_mask
from .patterns import FilterChain

logger = logging.getLogger(__name__)


@dataclass
class WatchBinding:
    """Compiled state shared by every entry installed for one watch spec"""
    watchlist: str
    spec: Any  # WatchConfig
    action_mask: int
    filter_chain: FilterChain = field(default_factory=FilterChain)
    actions: List[Any] = field(default_factory=list)

    @property
    def recursive(self) -> bool:
        return bool(self.spec.recursive)

    @property
    def raw_mask(self) -> int:
        return build_raw_mask(self.action_mask, self.recursive)


@dataclass(frozen=True)
class WatchEntry:
    """One active kernel watch"""
    path: str
    wd: int
    watchlist: str
    generation: int
    raw_mask: int
    action_mask: int
    binding: WatchBinding = field(compare=False, repr=False)


class WatchTree:
    """
    Own the mapping from path to active inotify watch for one generation

    Each tree has its own inotify instance, so descriptors of two
    generations never alias each other.

    Known race: activity inside a directory between its creation and
    ``extend_on_create`` completing is not observed.
    """

    def __init__(self, generation: int,
                 inotify_factory: Callable[[], Any] = INotify):
        """
        Initialize watch tree

        Args:
            generation: Generation id tagged on every entry
            inotify_factory: Creates the kernel interface (add_watch,
                rm_watch, read, fileno, close)
        """
        self.generation = generation
        self.inotify = inotify_factory()

        self._by_path: Dict[str, WatchEntry] = {}
        self._by_wd: Dict[int, WatchEntry] = {}

        self.stats = {
            'installed': 0,
            'install_failures': 0,
            'cancelled': 0,
            'forgotten': 0,
        }
        self.closed = False

    # Kernel plumbing

    def fileno(self) -> int:
        return self.inotify.fileno()

    def read_events(self, timeout: Optional[float] = 0) -> list:
        """Read pending kernel events; timeout in seconds, None blocks"""
        timeout_ms = None if timeout is None else int(timeout * 1000)
        return self.inotify.read(timeout=timeout_ms)

    # Installation

    def _add(self, path: str, binding: WatchBinding) -> WatchEntry:
        path = os.path.normpath(path)

        existing = self._by_path.get(path)
        if existing is not None:
            raise WatchInstallError(path, f"already watched by watchlist '{existing.watchlist}'")

        raw_mask = binding.raw_mask
        try:
            wd = self.inotify.add_watch(path, raw_mask)
        except OSError as e:
            self.stats['install_failures'] += 1
            raise WatchInstallError(path, e.strerror or str(e)) from e

        aliased = self._by_wd.get(wd)
        if aliased is not None:
            # Same inode reached through another path; the kernel merged the
            # two watches, so put the original mask back
            self.stats['install_failures'] += 1
            try:
                self.inotify.add_watch(aliased.path, aliased.raw_mask)
            except OSError as e:
                logger.warning(f"Cannot restore mask for {aliased.path}: {e}")
            raise WatchInstallError(path, f"same directory as {aliased.path}")

        entry = WatchEntry(
            path=path,
            wd=wd,
            watchlist=binding.watchlist,
            generation=self.generation,
            raw_mask=raw_mask,
            action_mask=binding.action_mask,
            binding=binding,
        )
        self._by_path[path] = entry
        self._by_wd[wd] = entry
        self.stats['installed'] += 1

        logger.debug(f"Watching {path} (wd={wd}, mask={describe_mask(raw_mask)})")
        return entry

    def install(self, binding: WatchBinding) -> List[WatchEntry]:
        """
        Install watches for a spec, walking the subtree when recursive

        Args:
            binding: Compiled watch spec

        Returns:
            Entries created, root first

        Raises:
            WatchInstallError: If the root itself cannot be watched
        """
        root = os.path.normpath(binding.spec.path)
        entries = [self._add(root, binding)]

        if not binding.recursive:
            return entries

        def on_walk_error(error: OSError):
            logger.warning(f"Cannot read directory {error.filename}: {error.strerror}")

        for dirpath, dirnames, _ in os.walk(root, onerror=on_walk_error):
            for dirname in dirnames:
                subdir = os.path.join(dirpath, dirname)
                if os.path.islink(subdir):
                    logger.debug(f"Not following symlink {subdir}")
                    continue
                try:
                    entries.append(self._add(subdir, binding))
                except WatchInstallError as e:
                    logger.warning(f"Skipping subdirectory: {e}")

        logger.info(f"Watching {root} recursively ({len(entries)} directories)")
        return entries

    def extend_on_create(self, binding: WatchBinding, new_dir_path: str) -> WatchEntry:
        """
        Watch a directory created under a recursive watch

        Raises:
            WatchInstallError: If the kernel refuses or the path is already watched
        """
        entry = self._add(new_dir_path, binding)
        logger.debug(f"New directory created, added watch: {entry.path}")
        return entry

    # Removal

    def cancel(self, entry: WatchEntry):
        """Release one watch and forget it"""
        if self._by_wd.get(entry.wd) is not entry:
            return

        try:
            self.inotify.rm_watch(entry.wd)
        except OSError as e:
            # Already gone in the kernel (directory deleted)
            logger.debug(f"rm_watch({entry.wd}) for {entry.path}: {e}")

        self._drop(entry)
        self.stats['cancelled'] += 1

    def forget(self, wd: int) -> Optional[WatchEntry]:
        """Drop bookkeeping for a descriptor the kernel already removed"""
        entry = self._by_wd.get(wd)
        if entry is None:
            return None

        self._drop(entry)
        self.stats['forgotten'] += 1
        logger.debug(f"Watch removed by kernel: {entry.path}")
        return entry

    def _drop(self, entry: WatchEntry):
        self._by_wd.pop(entry.wd, None)
        if self._by_path.get(entry.path) is entry:
            del self._by_path[entry.path]

    def clear_all(self):
        """Cancel every entry"""
        count = len(self._by_wd)
        for entry in list(self._by_wd.values()):
            self.cancel(entry)
        if count:
            logger.debug(f"Cleared {count} watches of generation {self.generation}")

    def close(self):
        """Cancel everything and release the inotify descriptor"""
        if self.closed:
            return
        self.clear_all()
        self.inotify.close()
        self.closed = True

    # Lookup

    def lookup(self, wd: int) -> Optional[WatchEntry]:
        return self._by_wd.get(wd)

    def get(self, path: str) -> Optional[WatchEntry]:
        return self._by_path.get(os.path.normpath(path))

    def entries(self) -> List[WatchEntry]:
        return list(self._by_path.values())

    def paths(self) -> List[str]:
        return list(self._by_path)

    def __len__(self):
        return len(self._by_path)

    def __contains__(self, path) -> bool:
        return os.path.normpath(str(path)) in self._by_path

    def get_stats(self) -> Dict[str, Any]:
        """Get watch tree statistics"""
        return {
            'generation': self.generation,
            'active_watches': len(self),
            **self.stats,
        }
