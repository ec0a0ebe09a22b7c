"""Parsing e validacao da configuracao do adapter AudioBridge.

Fontes suportadas:
- arquivo YAML (``load_config``), com chave raiz opcional ``audiobridge``;
- variaveis de ambiente ``PONTE_*`` (``config_from_env``).

Exemplo de ``ponte.yaml``::

    audiobridge:
      plugin_id: janus.plugin.audiobridge
      domain_tag: audiobridge
      default_feed: 0
      transaction_id_bytes: 16
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ponte.exceptions import ConfigParseError, ConfigValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

_ENV_FIELDS: dict[str, str] = {
    "PONTE_PLUGIN_ID": "plugin_id",
    "PONTE_DOMAIN_TAG": "domain_tag",
    "PONTE_DEFAULT_FEED": "default_feed",
    "PONTE_TRANSACTION_ID_BYTES": "transaction_id_bytes",
}


class BridgeConfig(BaseModel):
    """Configuracao do adapter.

    Attributes:
        plugin_id: Identificador do plugin usado no attach.
        domain_tag: Chave em ``plugindata.data`` que marca mensagens do dominio.
        default_feed: Feed enviado no join quando o caller nao escolhe (0 = servidor escolhe).
        transaction_id_bytes: Bytes aleatorios por identificador de transacao (hex = 2x).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    plugin_id: str = "janus.plugin.audiobridge"
    domain_tag: str = "audiobridge"
    default_feed: int | str = 0
    transaction_id_bytes: int = Field(default=16, ge=4, le=64)

    @field_validator("domain_tag", "plugin_id")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "Valor nao pode ser vazio"
            raise ValueError(msg)
        return v


def _validate(data: Mapping[str, Any], source: str) -> BridgeConfig:
    try:
        return BridgeConfig.model_validate(dict(data))
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigValidationError(source, errors) from e


def load_config(path: str | Path) -> BridgeConfig:
    """Carrega configuracao a partir de arquivo YAML.

    Raises:
        ConfigParseError: Arquivo inexistente, ilegivel ou YAML invalido.
        ConfigValidationError: Campos com tipo ou valor invalido.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigParseError(str(path), "Arquivo nao encontrado")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigParseError(str(path), f"Erro ao ler arquivo: {e}") from e

    return config_from_yaml_string(raw, source_path=str(path))


def config_from_yaml_string(raw: str, source_path: str = "<string>") -> BridgeConfig:
    """Carrega configuracao a partir de string YAML. Documento vazio = defaults."""
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigParseError(source_path, f"YAML invalido: {e}") from e

    if data is None:
        return BridgeConfig()

    if not isinstance(data, dict):
        raise ConfigParseError(source_path, "Conteudo YAML deve ser um mapeamento")

    # Aceita tanto o bloco 'audiobridge:' quanto os campos na raiz
    section = data.get("audiobridge", data)
    if not isinstance(section, dict):
        raise ConfigParseError(source_path, "Secao 'audiobridge' deve ser um mapeamento")

    return _validate(section, source_path)


def config_from_env(environ: Mapping[str, str] | None = None) -> BridgeConfig:
    """Cria configuracao a partir das variaveis ``PONTE_*`` (ausentes = default)."""
    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        value = env.get(env_name)
        if value is None or value == "":
            continue
        # Feeds numericos continuam numericos; string_ids do servidor ficam como texto
        if field_name == "default_feed" and value.isdigit():
            data[field_name] = int(value)
            continue
        data[field_name] = value
    return _validate(data, "environment")
