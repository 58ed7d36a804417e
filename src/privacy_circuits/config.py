"""
privacy_circuits/config.py
Circuit artifact locations.

Paths are plain configuration: the caller resolves them once and hands
them to the `Prover`. Nothing in the provers knows where artifacts live.
"""
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .constants import (
    BUILD_PATH_ENV_VAR,
    CREDIT_NOTE_LAYOUT,
    CREDIT_REGISTER_LAYOUT,
    OWNERSHIP_LAYOUT,
    PROVING_KEY_RELATIVE_PATH,
    VERIFICATION_KEY_RELATIVE_PATH,
    WASM_RELATIVE_PATH,
)
from .errors import ConfigurationError

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class CircuitArtifacts:
    """The three artifacts a Groth16 circuit needs."""
    wasm: Path
    proving_key: Path
    verification_key: Path

    @classmethod
    def from_build_path(cls, build_path: PathLike, name: str) -> 'CircuitArtifacts':
        """Locate a circuit's artifacts inside a standard build directory."""
        root = Path(build_path)
        return cls(
            wasm=root / WASM_RELATIVE_PATH.format(name=name),
            proving_key=root / PROVING_KEY_RELATIVE_PATH.format(name=name),
            verification_key=root / VERIFICATION_KEY_RELATIVE_PATH.format(name=name),
        )

    def missing(self) -> List[Path]:
        """Return the artifact paths that do not exist on disk."""
        return [
            path for path in (self.wasm, self.proving_key, self.verification_key)
            if not path.is_file()
        ]

    def load_verification_key(self) -> Dict[str, Any]:
        """Read the verification key JSON.

        Raises:
            ConfigurationError: If the file is missing or not valid JSON
        """
        try:
            return json.loads(self.verification_key.read_text(encoding='utf-8'))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(
                f"Cannot load verification key {self.verification_key}: {exc}"
            ) from exc


@dataclass(frozen=True)
class ArtifactLocations:
    """Artifacts for every circuit the prover may use.

    Example:
        artifacts = ArtifactLocations.from_build_path("/opt/circuits/build")
        prover = Prover(signer, artifacts, use_credit_note_pool=True)
    """
    ownership: CircuitArtifacts
    credit_note: Optional[CircuitArtifacts] = None
    credit_register: Optional[CircuitArtifacts] = None

    @classmethod
    def from_build_path(cls, build_path: PathLike) -> 'ArtifactLocations':
        if not str(build_path):
            raise ConfigurationError("A circuits build path is required")
        return cls(
            ownership=CircuitArtifacts.from_build_path(build_path, OWNERSHIP_LAYOUT.name),
            credit_note=CircuitArtifacts.from_build_path(build_path, CREDIT_NOTE_LAYOUT.name),
            credit_register=CircuitArtifacts.from_build_path(
                build_path, CREDIT_REGISTER_LAYOUT.name
            ),
        )

    @classmethod
    def from_env(cls, var: str = BUILD_PATH_ENV_VAR) -> 'ArtifactLocations':
        """Read the build directory from an environment variable.

        Raises:
            ConfigurationError: If the variable is unset or empty
        """
        build_path = os.environ.get(var, '')
        if not build_path:
            raise ConfigurationError(f"Environment variable {var} is not set")
        return cls.from_build_path(build_path)
