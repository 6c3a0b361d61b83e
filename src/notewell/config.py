"""notewell configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (NOTEWELL_DB, NOTEWELL_GENERATION_MODEL,
     NOTEWELL_EMBEDDING_MODEL)
  3. Per-project notewell.yaml  (in the notes directory or CWD)
  4. Global ~/.notewell/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".notewell"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "notewell.yaml"
_DEFAULT_DB_PATH: Path = _GLOBAL_CONFIG_DIR / "database" / "notewell.db"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["store", "embedding", "generation", "retrieval", "chunker", "watcher"]
)

# Values of embedding.model that switch semantic retrieval off.
_DISABLED_MODELS: frozenset[str] = frozenset(["", "none", "off", "false"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StoreCfg:
    """Content store location (notewell.yaml: store:)."""

    path: Path = _DEFAULT_DB_PATH


@dataclass
class EmbeddingCfg:
    """Embedding model and worker pool (notewell.yaml: embedding:).

    An empty ``model`` disables embeddings; retrieval is then lexical only.
    """

    model: str = "ollama/nomic-embed-text"
    pool_size: int = 1
    batch_size: int = 100
    timeout: float = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.model)


@dataclass
class GenerationCfg:
    """LLM generation configuration (notewell.yaml: generation:)."""

    model: str = "ollama/llama3.2"
    max_tokens: int = 1024
    temperature: float = 0.2


@dataclass
class RetrievalCfg:
    """Hybrid retrieval + context assembly (notewell.yaml: retrieval:)."""

    candidate_limit: int = 20
    lexical_weight: float = 0.4
    vector_weight: float = 0.6
    per_file_cap: int = 2
    char_budget: int = 2_400
    history_turns: int = 6
    global_embedding_limit: int = 200
    pinned_snippet_chars: int = 300


@dataclass
class ChunkerCfg:
    """Sliding character window (notewell.yaml: chunker:)."""

    chunk_size: int = 500
    overlap: int = 100
    min_length: int = 50
    structured: bool = True


@dataclass
class WatcherCfg:
    """File watcher behaviour (notewell.yaml: watcher:)."""

    debounce_ms: int = 1_000
    max_depth: int = 20
    extensions: tuple[str, ...] = (".md", ".markdown", ".mdx", ".txt")


@dataclass
class NotewellConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    store: StoreCfg = field(default_factory=StoreCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    watcher: WatcherCfg = field(default_factory=WatcherCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _normalize_model(value: Any) -> str:
    """Map YAML ``none``/``null``/``false`` and friends to an empty model name."""
    if value is None or value is False:
        return ""
    text = str(value).strip()
    return "" if text.lower() in _DISABLED_MODELS else text


def _normalize_extensions(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    exts = []
    for ext in value:
        ext = str(ext).strip().lower()
        if ext and not ext.startswith("."):
            ext = "." + ext
        if ext:
            exts.append(ext)
    return tuple(exts)


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> NotewellConfig:
    """Build a *NotewellConfig* from a merged raw YAML dict.

    Raises:
        ConfigError: If a numeric value is out of range.
    """
    cfg = NotewellConfig()

    if "store" in data:
        s = data["store"] or {}
        if s.get("path"):
            cfg.store = StoreCfg(path=Path(str(s["path"])).expanduser())

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=_normalize_model(e.get("model", cfg.embedding.model)),
            pool_size=int(e.get("pool_size", cfg.embedding.pool_size)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            candidate_limit=int(r.get("candidate_limit", d.candidate_limit)),
            lexical_weight=float(r.get("lexical_weight", d.lexical_weight)),
            vector_weight=float(r.get("vector_weight", d.vector_weight)),
            per_file_cap=int(r.get("per_file_cap", d.per_file_cap)),
            char_budget=int(r.get("char_budget", d.char_budget)),
            history_turns=int(r.get("history_turns", d.history_turns)),
            global_embedding_limit=int(
                r.get("global_embedding_limit", d.global_embedding_limit)
            ),
            pinned_snippet_chars=int(
                r.get("pinned_snippet_chars", d.pinned_snippet_chars)
            ),
        )

    if "chunker" in data:
        c = data["chunker"] or {}
        cfg.chunker = ChunkerCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunker.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunker.overlap)),
            min_length=int(c.get("min_length", cfg.chunker.min_length)),
            structured=bool(c.get("structured", cfg.chunker.structured)),
        )

    if "watcher" in data:
        w = data["watcher"] or {}
        cfg.watcher = WatcherCfg(
            debounce_ms=int(w.get("debounce_ms", cfg.watcher.debounce_ms)),
            max_depth=int(w.get("max_depth", cfg.watcher.max_depth)),
            extensions=_normalize_extensions(
                w.get("extensions", cfg.watcher.extensions)
            ),
        )

    _validate(cfg)
    return cfg


def _validate(cfg: NotewellConfig) -> None:
    if cfg.chunker.chunk_size < 1:
        raise ConfigError("chunker.chunk_size must be >= 1")
    if not 0 <= cfg.chunker.overlap < cfg.chunker.chunk_size:
        raise ConfigError("chunker.overlap must be >= 0 and smaller than chunker.chunk_size")
    if cfg.embedding.pool_size < 1:
        raise ConfigError("embedding.pool_size must be >= 1")
    if cfg.retrieval.per_file_cap < 1:
        raise ConfigError("retrieval.per_file_cap must be >= 1")
    if cfg.retrieval.char_budget < 1:
        raise ConfigError("retrieval.char_budget must be >= 1")
    if cfg.watcher.debounce_ms < 0:
        raise ConfigError("watcher.debounce_ms must be >= 0")


def _apply_env_overrides(cfg: NotewellConfig) -> NotewellConfig:
    """Apply NOTEWELL_* environment variable overrides (layer 2)."""
    if db := os.environ.get("NOTEWELL_DB"):
        cfg.store.path = Path(db).expanduser()
    if model := os.environ.get("NOTEWELL_GENERATION_MODEL"):
        cfg.generation.model = model
    if (model := os.environ.get("NOTEWELL_EMBEDDING_MODEL")) is not None:
        cfg.embedding.model = _normalize_model(model)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> NotewellConfig:
    """Load and return a merged *NotewellConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *notewell.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *NotewellConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.notewell/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# notewell global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: ollama/nomic-embed-text   # 'none' for lexical-only search\n"
            "\n"
            "generation:\n"
            "  model: ollama/llama3.2\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
