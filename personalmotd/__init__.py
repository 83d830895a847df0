"""PersonalMotd package: personalised server list icons and status text."""

from . import addresses, composer, config, models, pipeline, plugin, selection, skins  # noqa: F401

__all__ = ["addresses", "composer", "config", "models", "pipeline", "plugin", "selection", "skins"]
