"""Plugin registry: namespace -> command -> capability."""

import importlib
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

import structlog

from core.errors import ConfigError, DispatchError


logger = structlog.get_logger()


# A capability receives the live session and the resolved payload
Capability = Callable[[Any, dict[str, Any]], Awaitable[Any]]

BUILTIN_PREFIX = "puppetchef.builtin."

BUILTIN_MODULES = {
    "puppetchef.builtin.common": "browser.actions",
}


class PluginRegistry:
    """
    Read-only two-level lookup of plugin capabilities.

    Each namespace maps to either a mapping of command name -> async callable
    or any object (typically a module) exposing the commands as attributes.
    The engine only checks that namespace.command exists at dispatch time.
    """

    def __init__(self, plugins: Optional[Mapping[str, Any]] = None):
        self._plugins = MappingProxyType(dict(plugins or {}))

    def __contains__(self, namespace: str) -> bool:
        return namespace in self._plugins

    @property
    def namespaces(self) -> list[str]:
        """Registered namespaces."""
        return list(self._plugins)

    def resolve(self, namespace: str, command: str) -> Capability:
        """
        Get the capability for namespace.command.

        Raises DispatchError if either level is missing.
        """
        plugin = self._plugins.get(namespace)
        if plugin is None:
            raise DispatchError(
                f"Unknown plugin namespace: {namespace}",
                namespace=namespace,
                command=command,
            )

        capability = _lookup_command(plugin, command)
        if capability is None or not callable(capability):
            raise DispatchError(
                f"Unknown command '{command}' in plugin {namespace}",
                namespace=namespace,
                command=command,
            )

        return capability

    def list_commands(self, namespace: str) -> list[str]:
        """List command names exposed by a namespace."""
        plugin = self._plugins.get(namespace)
        if plugin is None:
            return []
        commands = _command_table(plugin)
        if commands is not None:
            return [name for name, func in commands.items() if callable(func)]
        return [
            name for name in dir(plugin)
            if not name.startswith("_") and callable(getattr(plugin, name))
        ]


def _command_table(plugin: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(plugin, Mapping):
        return plugin
    commands = getattr(plugin, "COMMANDS", None)
    if isinstance(commands, Mapping):
        return commands
    return None


def _lookup_command(plugin: Any, command: str) -> Any:
    if command.startswith("_"):
        return None
    commands = _command_table(plugin)
    if commands is not None:
        return commands.get(command)
    return getattr(plugin, command, None)


def load_plugins(namespaces: Iterable[str]) -> dict[str, Any]:
    """
    Import the plugin modules for the given namespaces.

    Namespaces under puppetchef.builtin. map to bundled modules; any other
    namespace is imported as a Python module path.
    """
    plugins: dict[str, Any] = {}
    for namespace in namespaces:
        if namespace in plugins:
            continue

        if namespace.startswith(BUILTIN_PREFIX):
            module_name = BUILTIN_MODULES.get(namespace)
            if module_name is None:
                raise ConfigError(f"Unknown builtin plugin: {namespace}", path=namespace)
        else:
            module_name = namespace

        try:
            plugins[namespace] = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigError(f"Cannot load plugin {namespace}: {e}", path=namespace)

        logger.debug("plugin_loaded", namespace=namespace, module=module_name)

    return plugins
