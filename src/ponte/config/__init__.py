"""Configuracao do Ponte."""

from ponte.config.settings import BridgeConfig, config_from_env, load_config

__all__ = ["BridgeConfig", "config_from_env", "load_config"]
