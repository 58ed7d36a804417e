"""
privacy_circuits/groth16.py
Boundary to the Groth16 proving system and Solidity call-data export.
"""
import asyncio
import json
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol, Sequence, Tuple, Union

from .config import CircuitArtifacts
from .constants import ProofLayout
from .errors import ProofFormatError, ProofLayoutError, ProvingSystemError

logger = logging.getLogger(__name__)

Groth16Proof = Dict[str, Any]
PublicSignals = List[str]


class Groth16Backend(Protocol):
    """Proving system used by the provers."""

    async def full_prove(
        self, inputs: Mapping[str, Any], wasm: Path, proving_key: Path
    ) -> Tuple[Groth16Proof, PublicSignals]:
        ...

    async def verify(
        self,
        verification_key: Mapping[str, Any],
        public_signals: Sequence[str],
        proof: Groth16Proof,
    ) -> bool:
        ...


def _stringify(value: Any) -> Any:
    """Convert ints to decimal strings; snarkjs reads big numbers as strings."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Mapping):
        return {key: _stringify(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify(item) for item in value]
    return value


class SnarkjsBackend:
    """Groth16 backend driving the snarkjs command line.

    Each call works in its own temporary directory, so concurrent calls do
    not share files.

    Args:
        executable: snarkjs command (``snarkjs`` or a full path)
    """

    def __init__(self, executable: str = 'snarkjs'):
        self.executable = executable

    def _resolve(self) -> str:
        path = shutil.which(self.executable)
        if path is None:
            raise ProvingSystemError(f"snarkjs executable not found: {self.executable}")
        return path

    async def _run(self, *args: str) -> Tuple[int, str, str]:
        process = await asyncio.create_subprocess_exec(
            self._resolve(), *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors='replace'), stderr.decode(errors='replace')

    async def full_prove(
        self, inputs: Mapping[str, Any], wasm: Path, proving_key: Path
    ) -> Tuple[Groth16Proof, PublicSignals]:
        """Compute the witness and a proof in one step.

        Raises:
            ProvingSystemError: If snarkjs exits non-zero or writes no proof
        """
        with tempfile.TemporaryDirectory(prefix='groth16-') as workdir:
            work = Path(workdir)
            input_path = work / 'input.json'
            proof_path = work / 'proof.json'
            public_path = work / 'public.json'
            input_path.write_text(json.dumps(_stringify(dict(inputs))), encoding='utf-8')

            started = time.monotonic()
            code, stdout, stderr = await self._run(
                'groth16', 'fullprove',
                str(input_path), str(wasm), str(proving_key),
                str(proof_path), str(public_path),
            )
            if code != 0 or not proof_path.is_file() or not public_path.is_file():
                raise ProvingSystemError(
                    f"snarkjs fullprove failed (exit code {code}): {(stderr or stdout).strip()}"
                )
            logger.debug("snarkjs fullprove took %.2fs", time.monotonic() - started)

            proof = json.loads(proof_path.read_text(encoding='utf-8'))
            public_signals = json.loads(public_path.read_text(encoding='utf-8'))
        return proof, [str(signal) for signal in public_signals]

    async def verify(
        self,
        verification_key: Mapping[str, Any],
        public_signals: Sequence[str],
        proof: Groth16Proof,
    ) -> bool:
        """Check a proof. An invalid proof yields ``False``, not an exception."""
        with tempfile.TemporaryDirectory(prefix='groth16-') as workdir:
            work = Path(workdir)
            key_path = work / 'verification_key.json'
            public_path = work / 'public.json'
            proof_path = work / 'proof.json'
            key_path.write_text(json.dumps(dict(verification_key)), encoding='utf-8')
            public_path.write_text(json.dumps(_stringify(list(public_signals))), encoding='utf-8')
            proof_path.write_text(json.dumps(_stringify(dict(proof))), encoding='utf-8')

            code, stdout, stderr = await self._run(
                'groth16', 'verify', str(key_path), str(public_path), str(proof_path)
            )
        if code != 0:
            logger.debug("snarkjs verify rejected proof: %s", (stderr or stdout).strip())
            return False
        return 'OK' in stdout


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.isdigit()


def validate_proof_shape(proof: Any) -> None:
    """Check that a proof has snarkjs' Groth16 structure.

    ``pi_a`` and ``pi_c`` hold at least two coordinates, ``pi_b`` at least
    two coordinate pairs, every coordinate a decimal number.

    Raises:
        ProofFormatError: If the structure is wrong
    """
    if not isinstance(proof, Mapping):
        raise ProofFormatError("Proof must be a mapping")
    for key in ('pi_a', 'pi_c'):
        point = proof.get(key)
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            raise ProofFormatError(f"Proof field {key} must hold at least 2 coordinates")
        if not all(_is_number(value) for value in point):
            raise ProofFormatError(f"Proof field {key} has non-numeric coordinates")
    pi_b = proof.get('pi_b')
    if not isinstance(pi_b, (list, tuple)) or len(pi_b) < 2:
        raise ProofFormatError("Proof field pi_b must hold at least 2 coordinate pairs")
    for pair in pi_b:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ProofFormatError("Proof field pi_b must hold coordinate pairs")
        if not all(_is_number(value) for value in pair):
            raise ProofFormatError("Proof field pi_b has non-numeric coordinates")


def _p256(value: Union[int, str]) -> str:
    return '0x' + format(int(value), 'x').rjust(64, '0')


def export_solidity_call_data(proof: Groth16Proof, public_signals: Sequence[Union[int, str]]) -> str:
    """Render proof and signals exactly like snarkjs ``exportSolidityCallData``.

    The two coordinates of each ``pi_b`` element are swapped, as the
    Solidity verifier's pairing precompile expects.
    """
    validate_proof_shape(proof)
    pi_a, pi_b, pi_c = proof['pi_a'], proof['pi_b'], proof['pi_c']
    inputs = ','.join(f'"{_p256(signal)}"' for signal in public_signals)
    return (
        f'["{_p256(pi_a[0])}", "{_p256(pi_a[1])}"],'
        f'[["{_p256(pi_b[0][1])}", "{_p256(pi_b[0][0])}"],'
        f'["{_p256(pi_b[1][1])}", "{_p256(pi_b[1][0])}"]],'
        f'["{_p256(pi_c[0])}", "{_p256(pi_c[1])}"],'
        f'[{inputs}]'
    )


@dataclass(frozen=True)
class ProofCallData:
    """Contract-call shape of a proof: ``{pA, pB, pC, pubSignals}``."""
    p_a: List[str]
    p_b: List[List[str]]
    p_c: List[str]
    pub_signals: List[str]

    def as_args(self) -> Tuple[List[str], List[List[str]], List[str], List[str]]:
        return self.p_a, self.p_b, self.p_c, self.pub_signals

    def as_struct(self) -> Tuple[List[int], List[List[int]], List[int], List[int]]:
        """Integer tuple ready for ABI encoding of the proof struct."""
        return (
            [int(value, 16) for value in self.p_a],
            [[int(value, 16) for value in pair] for pair in self.p_b],
            [int(value, 16) for value in self.p_c],
            [int(value, 16) for value in self.pub_signals],
        )


def parse_call_data(call_data: str) -> ProofCallData:
    """Parse the text produced by `export_solidity_call_data`.

    Raises:
        ProofFormatError: If the text does not have four groups
    """
    try:
        groups = json.loads(f'[{call_data}]')
    except ValueError as exc:
        raise ProofFormatError(f"Unreadable call data: {exc}") from exc
    if len(groups) != 4:
        raise ProofFormatError(f"Call data must have 4 groups, got {len(groups)}")
    p_a, p_b, p_c, pub_signals = groups
    return ProofCallData(p_a=p_a, p_b=p_b, p_c=p_c, pub_signals=pub_signals)


@dataclass
class ProofResult:
    """A single-use proof bundle for one contract call."""
    proof: Groth16Proof
    public_signals: PublicSignals
    call_data_as_str: str
    call_data: ProofCallData

    @classmethod
    def from_proof(
        cls, layout: ProofLayout, proof: Groth16Proof, public_signals: Sequence[str]
    ) -> 'ProofResult':
        """Package a proof after checking it against the circuit layout.

        Raises:
            ProofLayoutError: If the public-signal count does not match
        """
        if len(public_signals) != layout.public_signal_count:
            raise ProofLayoutError(
                f"{layout.name} expects {layout.public_signal_count} public signals, "
                f"got {len(public_signals)}"
            )
        call_data_as_str = export_solidity_call_data(proof, public_signals)
        return cls(
            proof=proof,
            public_signals=[str(signal) for signal in public_signals],
            call_data_as_str=call_data_as_str,
            call_data=parse_call_data(call_data_as_str),
        )


class Circuit:
    """One proving circuit: its layout, artifacts and proving backend."""

    def __init__(self, layout: ProofLayout, artifacts: CircuitArtifacts, backend: Groth16Backend):
        self.layout = layout
        self.artifacts = artifacts
        self.backend = backend

    async def prove(self, inputs: Mapping[str, Any]) -> ProofResult:
        logger.info("Generating %s proof", self.layout.name)
        started = time.monotonic()
        proof, public_signals = await self.backend.full_prove(
            inputs, self.artifacts.wasm, self.artifacts.proving_key
        )
        logger.info(
            "Generated %s proof in %.2fs", self.layout.name, time.monotonic() - started
        )
        return ProofResult.from_proof(self.layout, proof, public_signals)

    async def verify(self, proof: Groth16Proof, public_signals: Sequence[str]) -> bool:
        """Verify against the circuit's verification key.

        Raises:
            ProofFormatError: If the proof is structurally malformed
        """
        validate_proof_shape(proof)
        verification_key = self.artifacts.load_verification_key()
        return await self.backend.verify(verification_key, public_signals, proof)
