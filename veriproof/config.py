"""VeriProof Configuration — project-level .veriproofrc.yml support.

Loads configuration from .veriproofrc.yml (or .veriproofrc.yaml,
.veriproofrc.json) found by walking up from the working directory.
Allows teams to configure:
  - Which provers to register and which one is the default
  - Prover timeouts and executable paths
  - Validation thresholds
  - Loop invariant inference

Example .veriproofrc.yml:
    default_prover: z3
    provers:
      z3: true
      coq: true
      lean: false          # not installed on CI
    prover_timeout: 20     # seconds, overrides prover capabilities
    coq_executable: /opt/coq/bin/coqc
    lemma_threshold: 10
    max_premises_per_step: 5
    infer_invariants: true
    log_level: INFO
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from veriproof.errors import ConfigError


@dataclass
class VeriproofConfig:
    """Project-level VeriProof configuration."""
    default_prover: str = "z3"
    # Prover toggles; provers not listed are enabled
    provers: Dict[str, bool] = field(default_factory=dict)
    # Per-call timeout in seconds; None = use each prover's capabilities
    prover_timeout: Optional[float] = None
    coq_executable: str = "coqc"
    lean_executable: str = "lean"
    # Validation
    lemma_threshold: int = 10
    max_premises_per_step: int = 5
    # WP calculus
    infer_invariants: bool = True
    log_level: str = "WARNING"

    def prover_enabled(self, prover_id: str) -> bool:
        return self.provers.get(prover_id, True)


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".veriproofrc.yml",
    ".veriproofrc.yaml",
    ".veriproofrc.json",
    "veriproof.config.yml",
    "veriproof.config.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> VeriproofConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, returns defaults.  A file that exists but
    cannot be parsed raises ConfigError.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return VeriproofConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}", path=path) from exc

    try:
        if path.endswith(".json"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Malformed config file {path}: {exc}", path=path) from exc

    if data is None:
        return VeriproofConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=path)
    return _dict_to_config(data, path)


def _dict_to_config(data: Dict[str, Any], source: str = "<dict>") -> VeriproofConfig:
    """Convert a parsed dict to VeriproofConfig."""
    config = VeriproofConfig()
    try:
        if "default_prover" in data:
            config.default_prover = str(data["default_prover"])
        if "provers" in data:
            if not isinstance(data["provers"], dict):
                raise ConfigError(f"'provers' must be a mapping in {source}", path=source)
            config.provers = {str(k): bool(v) for k, v in data["provers"].items()}
        if data.get("prover_timeout") is not None:
            config.prover_timeout = float(data["prover_timeout"])
        if "coq_executable" in data:
            config.coq_executable = str(data["coq_executable"])
        if "lean_executable" in data:
            config.lean_executable = str(data["lean_executable"])
        if "lemma_threshold" in data:
            config.lemma_threshold = int(data["lemma_threshold"])
        if "max_premises_per_step" in data:
            config.max_premises_per_step = int(data["max_premises_per_step"])
        if "infer_invariants" in data:
            config.infer_invariants = bool(data["infer_invariants"])
        if "log_level" in data:
            config.log_level = str(data["log_level"]).upper()
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in {source}: {exc}", path=source) from exc
    return config
