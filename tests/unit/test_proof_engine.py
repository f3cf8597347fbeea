"""
Unit tests for the Groth16 proof engine and call-argument conversion.
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from zkvote_toolkit.proofs.engine import (
    ProofEngine,
    SnarkjsBackend,
    to_call_args,
    unstringify_big_ints,
)
from zkvote_toolkit.shared.exceptions import (
    ConfigurationException,
    ProvingError,
)
from zkvote_toolkit.shared.types import CircuitArtifacts, MembershipWitness


@pytest.fixture
def artifacts(tmp_path) -> CircuitArtifacts:
    """Circuit files laid out as <dir>/voting/..."""
    voting = tmp_path / "voting"
    voting.mkdir()
    (voting / "Voting.wasm").write_bytes(b"\0asm")
    (voting / "circuit_final.zkey").write_bytes(b"zkey")
    return CircuitArtifacts.from_directory(tmp_path)


@pytest.fixture
def witness() -> MembershipWitness:
    return MembershipWitness(
        secret="1",
        nullifier="2",
        nullifier_hash="3",
        root="4",
        path_elements=["0", "0", "0"],
        path_indices=["0", "0", "0"],
    )


class TestUnstringify:
    """Tests for unstringify_big_ints."""

    def test_nested_values(self):
        """Decimal and hex strings become ints at any depth."""
        value = {"a": ["1", "0x10"], "b": [["2"]], "protocol": "groth16", "n": 5}

        assert unstringify_big_ints(value) == {
            "a": [1, 16],
            "b": [[2]],
            "protocol": "groth16",
            "n": 5,
        }


class TestToCallArgs:
    """Tests for the snarkjs to verifier conversion."""

    def test_layout_and_b_swap(self, sample_snarkjs_proof):
        """a and c drop the projective coordinate; b pairs are swapped."""
        artifact = to_call_args(sample_snarkjs_proof, ["4", "3"])

        assert artifact.a == ["1", "2"]
        assert artifact.b == [["4", "3"], ["6", "5"]]
        assert artifact.c == ["7", "8"]
        assert artifact.public_inputs == ["4", "3"]
        assert artifact.as_call_args() == (
            ["1", "2"],
            [["4", "3"], ["6", "5"]],
            ["7", "8"],
            ["4", "3"],
        )
        assert artifact.as_uint_args()[1] == [[4, 3], [6, 5]]

    def test_hex_elements(self, sample_snarkjs_proof):
        """Hex strings are normalized to decimal strings."""
        sample_snarkjs_proof["pi_a"] = ["0x0a", "0x0b", "0x01"]

        assert to_call_args(sample_snarkjs_proof, []).a == ["10", "11"]

    def test_missing_element(self, sample_snarkjs_proof):
        """A proof without pi_c is malformed."""
        del sample_snarkjs_proof["pi_c"]

        with pytest.raises(ProvingError, match="Malformed"):
            to_call_args(sample_snarkjs_proof, [])

    def test_non_numeric_element(self, sample_snarkjs_proof):
        """Proof elements must be unsigned integers."""
        sample_snarkjs_proof["pi_a"] = ["x", "2", "1"]

        with pytest.raises(ProvingError, match="not an unsigned integer"):
            to_call_args(sample_snarkjs_proof, [])

    def test_public_signals_must_be_list(self, sample_snarkjs_proof):
        with pytest.raises(ProvingError):
            to_call_args(sample_snarkjs_proof, {"root": "1"})


class TestProofEngine:
    """Tests for ProofEngine with a stub backend."""

    @pytest.mark.asyncio
    async def test_prove(self, artifacts, witness, sample_snarkjs_proof):
        """Backend output is converted into call arguments."""
        backend = MagicMock()
        backend.full_prove = AsyncMock(
            return_value=(sample_snarkjs_proof, ["4", "3"])
        )

        artifact = await ProofEngine(backend).prove(witness, artifacts)

        assert artifact.public_inputs == ["4", "3"]
        circuit_input = backend.full_prove.call_args.args[0]
        assert circuit_input["nullifierHash"] == "3"
        assert circuit_input["path_index"] == ["0", "0", "0"]

    @pytest.mark.asyncio
    async def test_missing_artifacts(self, tmp_path, witness):
        """Absent wasm/zkey files fail before the backend runs."""
        backend = MagicMock()
        backend.full_prove = AsyncMock()

        with pytest.raises(ConfigurationException, match="not found"):
            await ProofEngine(backend).prove(
                witness, CircuitArtifacts.from_directory(tmp_path)
            )
        backend.full_prove.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_rejection_propagates(self, artifacts, witness):
        """A witness the circuit rejects surfaces as ProvingError."""
        backend = MagicMock()
        backend.full_prove = AsyncMock(
            side_effect=ProvingError("Assert Failed", stderr="Assert Failed")
        )

        with pytest.raises(ProvingError, match="Assert Failed"):
            await ProofEngine(backend).prove(witness, artifacts)

    @pytest.mark.asyncio
    async def test_verify_needs_key(self, artifacts, witness, sample_snarkjs_proof):
        """Local verification without a verification key is misconfigured."""
        backend = MagicMock()
        backend.full_prove = AsyncMock(return_value=(sample_snarkjs_proof, []))

        with pytest.raises(ConfigurationException):
            await ProofEngine(backend, verify=True).prove(witness, artifacts)

    @pytest.mark.asyncio
    async def test_verify_failure(
        self, tmp_path, artifacts, witness, sample_snarkjs_proof
    ):
        """A proof that fails local verification is not returned."""
        vkey = tmp_path / "voting" / "verification_key.json"
        vkey.write_text("{}")
        backend = MagicMock()
        backend.full_prove = AsyncMock(return_value=(sample_snarkjs_proof, []))
        backend.verify = AsyncMock(return_value=False)

        with pytest.raises(ProvingError, match="local verification"):
            await ProofEngine(backend, verify=True).prove(
                witness, CircuitArtifacts.from_directory(tmp_path)
            )


def _fake_process(returncode: int, stdout: bytes = b"", stderr: bytes = b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    return process


class TestSnarkjsBackend:
    """Tests for the snarkjs subprocess wrapper."""

    @pytest.mark.asyncio
    async def test_missing_binary(self, artifacts):
        """A missing snarkjs binary is a configuration error."""
        with patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("snarkjs")),
        ):
            with pytest.raises(ConfigurationException, match="snarkjs not found"):
                await SnarkjsBackend().full_prove({}, artifacts)

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, artifacts):
        """A failing fullprove raises ProvingError with stderr attached."""
        with patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(return_value=_fake_process(1, stderr=b"Error: Assert Failed")),
        ):
            with pytest.raises(ProvingError) as exc_info:
                await SnarkjsBackend().full_prove({"secret": "1"}, artifacts)

        assert "Assert Failed" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_full_prove_reads_outputs(self, artifacts, sample_snarkjs_proof):
        """proof.json and public.json are read back from the work directory."""

        async def fake_exec(*cmd, cwd=None, stdout=None, stderr=None):
            assert cmd[:3] == ("snarkjs", "groth16", "fullprove")
            input_file, proof_file, public_file = (
                Path(cmd[3]),
                Path(cmd[6]),
                Path(cmd[7]),
            )
            assert json.loads(input_file.read_text()) == {"secret": "1"}
            proof_file.write_text(json.dumps(sample_snarkjs_proof))
            public_file.write_text(json.dumps(["4", "3"]))
            return _fake_process(0)

        with patch("asyncio.create_subprocess_exec", side_effect=fake_exec):
            proof, public = await SnarkjsBackend().full_prove(
                {"secret": "1"}, artifacts
            )

        assert proof == sample_snarkjs_proof
        assert public == ["4", "3"]

    @pytest.mark.asyncio
    async def test_verify_ok(self, tmp_path, sample_snarkjs_proof):
        """`snarkjs groth16 verify` printing OK means valid."""
        with patch(
            "asyncio.create_subprocess_exec",
            AsyncMock(return_value=_fake_process(0, stdout=b"[INFO]  snarkJS: OK!")),
        ):
            assert await SnarkjsBackend().verify(
                sample_snarkjs_proof, ["1"], tmp_path / "vk.json"
            )

    @pytest.mark.asyncio
    async def test_inner_timeout_kills_child(self, artifacts):
        """A prover exceeding the backend timeout is killed and reported."""
        process = _hanging_process()

        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=process)
        ):
            with pytest.raises(ProvingError, match="timed out"):
                await SnarkjsBackend(timeout=0.05).full_prove({}, artifacts)

        process.kill.assert_called_once()
        process.wait.assert_awaited()

    @pytest.mark.asyncio
    async def test_outer_cancellation_kills_child(self, artifacts):
        """An enclosing deadline reaps the prover before the work dir is removed."""
        process = _hanging_process()

        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=process)
        ):
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(
                    SnarkjsBackend(timeout=None).full_prove({}, artifacts),
                    timeout=0.05,
                )

        process.kill.assert_called_once()
        process.wait.assert_awaited()
        assert process.returncode == -9


def _hanging_process():
    process = MagicMock()
    process.returncode = None

    async def communicate():
        await asyncio.Event().wait()

    async def wait():
        return process.returncode

    def kill():
        process.returncode = -9

    process.communicate = communicate
    process.kill = MagicMock(side_effect=kill)
    process.wait = AsyncMock(side_effect=wait)
    return process
