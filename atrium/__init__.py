"""Atrium — homepage service registry and discovery engine.

Quickstart::

    from atrium.discovery import ConfigStore, ServiceRegistry

    registry = ServiceRegistry.bootstrap(ConfigStore("./data/services.json"))
    for service in registry.list_for_roles(["user"]):
        print(service.id, service.status.value)
"""

__version__ = "1.0.0"
