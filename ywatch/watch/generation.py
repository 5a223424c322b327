# ywatch/watch/generation.py

"""
Generations of watches and their all-or-nothing replacement
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from inotify_simple import INotify

from ..actions import Action, build_action
from ..exceptions import ConfigurationError, WatchInstallError
from ..utils.config import Config
from .events import build_event_mask
from .handlers import Dispatcher
from .patterns import FilterChain
from .watcher import WatchBinding, WatchTree

logger = logging.getLogger(__name__)


@dataclass
class Generation:
    """Watch tree and dispatch state created together from one configuration"""
    id: int
    config: Config
    tree: WatchTree
    dispatcher: Dispatcher
    bindings: List[WatchBinding] = field(default_factory=list)

    @property
    def actions(self) -> List[Action]:
        return [action for binding in self.bindings for action in binding.actions]

    def poll_actions(self):
        for action in self.actions:
            action.poll()

    def close(self):
        """Cancel every watch and release action resources"""
        self.tree.close()
        for action in self.actions:
            try:
                action.close()
            except Exception as e:
                logger.warning(f"Error closing {action!r}: {e}")


def compile_bindings(config: Config) -> List[WatchBinding]:
    """
    Build filters and actions for every enabled watch

    Touches no kernel state, so a failure here leaves nothing to undo.

    Raises:
        ConfigurationError: On a bad pattern, event name, or action spec
    """
    bindings = []
    built: List[Action] = []

    try:
        for watchlist in config.enabled_watchlists():
            for spec in watchlist.watches:
                filters = spec.filters
                actions = []
                for action_config in spec.actions:
                    action = build_action(action_config, config, watchlist)
                    built.append(action)
                    actions.append(action)

                bindings.append(WatchBinding(
                    watchlist=watchlist.name,
                    spec=spec,
                    action_mask=build_event_mask(spec.events),
                    filter_chain=FilterChain(filters.include, filters.exclude, filters.scope),
                    actions=actions,
                ))
    except ConfigurationError:
        for action in built:
            action.close()
        raise

    return bindings


def build_generation(config: Config, generation_id: int,
                     inotify_factory: Callable[[], Any] = INotify) -> Generation:
    """
    Create a complete generation from configuration

    Per-path install failures are logged and skipped; configuration
    errors abort the build and release whatever was created.

    Raises:
        ConfigurationError: If any watch or action spec is invalid
    """
    bindings = compile_bindings(config)

    try:
        tree = WatchTree(generation_id, inotify_factory)
    except OSError as e:
        for binding in bindings:
            for action in binding.actions:
                action.close()
        raise ConfigurationError(f"Cannot create inotify instance: {e}") from e

    for binding in bindings:
        logger.info(f"Setting up watch {binding.spec.path} for watchlist '{binding.watchlist}' "
                    f"(recursive: {binding.recursive})")
        try:
            tree.install(binding)
        except WatchInstallError as e:
            logger.error(f"Failed to watch: {e}")

    generation = Generation(
        id=generation_id,
        config=config,
        tree=tree,
        dispatcher=Dispatcher(tree),
        bindings=bindings,
    )

    logger.info(f"Generation {generation_id}: {len(tree)} watches across "
                f"{len(config.enabled_watchlists())} watchlist(s)")
    return generation


class ReloadCoordinator:
    """
    Own the active generation and replace it atomically

    A new generation is fully built before the old one is touched; if
    building fails the old generation keeps running unchanged.
    """

    def __init__(self, inotify_factory: Callable[[], Any] = INotify,
                 builder: Callable[..., Generation] = build_generation):
        self.inotify_factory = inotify_factory
        self.builder = builder
        self.current: Optional[Generation] = None
        self._last_id = 0

        self.stats = {
            'reloads': 0,
            'failed_reloads': 0,
        }

    def _build(self, config: Config) -> Generation:
        generation = self.builder(config, self._last_id + 1, self.inotify_factory)
        self._last_id = generation.id
        return generation

    def activate(self, config: Config) -> Generation:
        """
        Install the first generation

        Raises:
            ConfigurationError: Fatal at startup
        """
        if self.current is not None:
            raise RuntimeError("A generation is already active; use reload()")

        self.current = self._build(config)
        return self.current

    def reload(self, config: Config) -> Generation:
        """
        Replace the active generation with one built from ``config``

        Raises:
            ConfigurationError: The new configuration is invalid; the active
                generation is left untouched
        """
        try:
            new_generation = self._build(config)
        except ConfigurationError:
            self.stats['failed_reloads'] += 1
            raise

        old_generation = self.current
        if old_generation is not None:
            old_generation.close()
        self.current = new_generation

        self.stats['reloads'] += 1
        logger.info(f"Generation {new_generation.id} active"
                    + (f" (replaced {old_generation.id})" if old_generation else ""))
        return new_generation

    def shutdown(self):
        """Close the active generation"""
        if self.current is not None:
            self.current.close()
            self.current = None
