"""
tests/test_groth16.py
Unit tests for the proving-system boundary and Solidity call-data export.
"""
import asyncio
import json

import pytest

from conftest import FakeGroth16
from privacy_circuits import groth16 as groth16_module
from privacy_circuits.config import CircuitArtifacts
from privacy_circuits.constants import OWNERSHIP_LAYOUT
from privacy_circuits.errors import (
    ConfigurationError,
    ProofFormatError,
    ProofLayoutError,
    ProvingSystemError,
)
from privacy_circuits.groth16 import (
    Circuit,
    ProofResult,
    SnarkjsBackend,
    export_solidity_call_data,
    parse_call_data,
    validate_proof_shape,
)

PROOF = {
    'pi_a': ['1', '2', '1'],
    'pi_b': [['3', '4'], ['5', '6'], ['1', '0']],
    'pi_c': ['7', '8', '1'],
    'protocol': 'groth16',
    'curve': 'bn128',
}


def word(value):
    return '0x' + format(value, 'x').rjust(64, '0')


class TestExportSolidityCallData:
    """Call-data text format tests."""

    def test_matches_snarkjs_format(self):
        """Output should follow exportSolidityCallData exactly."""
        text = export_solidity_call_data(PROOF, ['9', '10'])
        assert text == (
            f'["{word(1)}", "{word(2)}"],'
            f'[["{word(4)}", "{word(3)}"],["{word(6)}", "{word(5)}"]],'
            f'["{word(7)}", "{word(8)}"],'
            f'["{word(9)}","{word(10)}"]'
        )

    def test_pi_b_coordinates_swapped(self):
        """Each pi_b pair should be reversed in the call data."""
        call_data = parse_call_data(export_solidity_call_data(PROOF, ['9']))
        assert call_data.p_b == [[word(4), word(3)], [word(6), word(5)]]

    def test_parse_groups(self):
        """Parsed call data should expose four groups."""
        call_data = parse_call_data(export_solidity_call_data(PROOF, ['9', '10', '11']))
        assert call_data.p_a == [word(1), word(2)]
        assert call_data.p_c == [word(7), word(8)]
        assert call_data.pub_signals == [word(9), word(10), word(11)]

    def test_as_struct_gives_integers(self):
        """as_struct should convert hex words back to integers."""
        call_data = parse_call_data(export_solidity_call_data(PROOF, ['9']))
        assert call_data.as_struct() == ([1, 2], [[4, 3], [6, 5]], [7, 8], [9])

    def test_parse_rejects_wrong_group_count(self):
        """Call data without four groups should raise."""
        with pytest.raises(ProofFormatError, match="4 groups"):
            parse_call_data('["0x01"],["0x02"]')

    def test_parse_rejects_garbage(self):
        """Unparseable call data should raise."""
        with pytest.raises(ProofFormatError, match="Unreadable"):
            parse_call_data('not json')


class TestValidateProofShape:
    """Proof structure validation tests."""

    def test_valid_proof_accepted(self):
        """A snarkjs-shaped proof should pass."""
        validate_proof_shape(PROOF)

    def test_missing_field_rejected(self):
        """A proof without pi_c should raise."""
        proof = {key: value for key, value in PROOF.items() if key != 'pi_c'}
        with pytest.raises(ProofFormatError, match="pi_c"):
            validate_proof_shape(proof)

    def test_non_numeric_rejected(self):
        """Non-numeric coordinates should raise."""
        proof = dict(PROOF, pi_a=['x', '2', '1'])
        with pytest.raises(ProofFormatError, match="non-numeric"):
            validate_proof_shape(proof)

    def test_bad_pi_b_pair_rejected(self):
        """pi_b elements must be pairs."""
        proof = dict(PROOF, pi_b=[['3'], ['5', '6']])
        with pytest.raises(ProofFormatError, match="pairs"):
            validate_proof_shape(proof)

    def test_non_mapping_rejected(self):
        """A proof must be a mapping."""
        with pytest.raises(ProofFormatError):
            validate_proof_shape(['pi_a'])


class TestProofResult:
    """Proof packaging tests."""

    def test_from_proof(self):
        """Signals should be stringified and call data attached."""
        result = ProofResult.from_proof(OWNERSHIP_LAYOUT, PROOF, [1, 2, 3])
        assert result.public_signals == ['1', '2', '3']
        assert result.call_data.pub_signals == [word(1), word(2), word(3)]
        assert result.call_data_as_str == export_solidity_call_data(PROOF, [1, 2, 3])

    def test_signal_count_checked(self):
        """A signal count different from the layout should raise."""
        with pytest.raises(ProofLayoutError, match="expects 3 public signals, got 5"):
            ProofResult.from_proof(OWNERSHIP_LAYOUT, PROOF, ['1', '2', '3', '4', '5'])


class TestCircuit:
    """Circuit wrapper tests."""

    def test_prove_passes_artifacts(self, artifacts):
        """The backend should receive the circuit's wasm and proving key."""
        backend = FakeGroth16()
        circuit = Circuit(OWNERSHIP_LAYOUT, artifacts.ownership, backend)
        result = asyncio.run(circuit.prove({'secret': 1, 'pubA': 2, 'pubB': 3, 'pubC': 4}))
        assert result.public_signals == ['2', '3', '4']
        call = backend.prove_calls[0]
        assert call['wasm'] == artifacts.ownership.wasm
        assert call['proving_key'] == artifacts.ownership.proving_key

    def test_verify_round_trip_and_tamper(self, artifacts):
        """A fresh proof verifies; a modified one does not."""
        circuit = Circuit(OWNERSHIP_LAYOUT, artifacts.ownership, FakeGroth16())
        result = asyncio.run(circuit.prove({'pubA': 2, 'pubB': 3, 'pubC': 4}))
        assert asyncio.run(circuit.verify(result.proof, result.public_signals))

        tampered = json.loads(json.dumps(result.proof))
        tampered['pi_a'][0] = tampered['pi_a'][0][:-3] + '123'
        assert not asyncio.run(circuit.verify(tampered, result.public_signals))

    def test_verify_malformed_proof_raises(self, artifacts):
        """Structurally broken proofs should raise before the backend runs."""
        backend = FakeGroth16()
        circuit = Circuit(OWNERSHIP_LAYOUT, artifacts.ownership, backend)
        with pytest.raises(ProofFormatError):
            asyncio.run(circuit.verify({'pi_a': []}, ['1', '2', '3']))
        assert backend.verify_calls == 0

    def test_verify_missing_key_raises(self, tmp_path):
        """A missing verification key is a configuration problem."""
        circuit = Circuit(
            OWNERSHIP_LAYOUT,
            CircuitArtifacts.from_build_path(tmp_path, 'ownershipVerifier'),
            FakeGroth16(),
        )
        with pytest.raises(ConfigurationError, match="verification key"):
            asyncio.run(circuit.verify(PROOF, ['1', '2', '3']))


class FakeProcess:
    def __init__(self, returncode, stdout=b'', stderr=b''):
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr

    async def communicate(self):
        return self._stdout, self._stderr


def patch_snarkjs(monkeypatch, returncode, stdout=b'', stderr=b''):
    calls = []

    async def fake_exec(*args, **kwargs):
        calls.append(args)
        return FakeProcess(returncode, stdout, stderr)

    monkeypatch.setattr(groth16_module.shutil, 'which', lambda name: '/usr/bin/snarkjs')
    monkeypatch.setattr(groth16_module.asyncio, 'create_subprocess_exec', fake_exec)
    return calls


class TestSnarkjsBackend:
    """snarkjs CLI backend tests with a stubbed subprocess."""

    def test_verify_ok(self, monkeypatch):
        """Exit 0 with OK in the output should verify."""
        calls = patch_snarkjs(monkeypatch, 0, stdout=b'[INFO]  snarkJS: OK!\n')
        assert asyncio.run(SnarkjsBackend().verify({}, ['1'], PROOF))
        assert calls[0][1:3] == ('groth16', 'verify')

    def test_verify_nonzero_exit_is_false(self, monkeypatch):
        """An invalid proof should give False, not an exception."""
        patch_snarkjs(monkeypatch, 1, stderr=b'[ERROR] snarkJS: Invalid proof\n')
        assert asyncio.run(SnarkjsBackend().verify({}, ['1'], PROOF)) is False

    def test_verify_without_ok_is_false(self, monkeypatch):
        """Exit 0 without OK should not count as verified."""
        patch_snarkjs(monkeypatch, 0, stdout=b'')
        assert asyncio.run(SnarkjsBackend().verify({}, ['1'], PROOF)) is False

    def test_full_prove_failure_raises(self, monkeypatch, tmp_path):
        """A failed fullprove should raise with snarkjs' message."""
        patch_snarkjs(monkeypatch, 1, stderr=b'Error: Assert Failed')
        with pytest.raises(ProvingSystemError, match="Assert Failed"):
            asyncio.run(SnarkjsBackend().full_prove(
                {'a': 1}, tmp_path / 'c.wasm', tmp_path / 'c.zkey'
            ))

    def test_missing_executable_raises(self, monkeypatch, tmp_path):
        """An absent snarkjs should raise a proving-system error."""
        monkeypatch.setattr(groth16_module.shutil, 'which', lambda name: None)
        with pytest.raises(ProvingSystemError, match="not found"):
            asyncio.run(SnarkjsBackend().verify({}, ['1'], PROOF))
