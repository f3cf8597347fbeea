"""
Groth16 proving for ballot witnesses.

The backend is the snarkjs CLI, run as an asyncio subprocess so the event
loop keeps running while the prover works. Its output is normalized into the
positional arguments of the Solidity verifier:
`(uint[2] a, uint[2][2] b, uint[2] c, uint[] input)`.
"""

import asyncio
import json
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from zkvote_toolkit.shared.exceptions import (
    ConfigurationException,
    ProvingError,
)
from zkvote_toolkit.shared.logging import get_logger
from zkvote_toolkit.shared.types import (
    CircuitArtifacts,
    MembershipWitness,
    ProofArtifact,
)

_logger = get_logger(__name__)

_DECIMAL = re.compile(r"^[0-9]+$")
_HEX = re.compile(r"^0x[0-9a-fA-F]+$")

RawProof = Dict[str, Any]
PublicSignals = List[Any]


def unstringify_big_ints(value: Any) -> Any:
    """Recursively turn decimal and 0x-hex strings into ints."""
    if isinstance(value, str):
        if _DECIMAL.match(value):
            return int(value)
        if _HEX.match(value):
            return int(value, 16)
        return value
    if isinstance(value, list):
        return [unstringify_big_ints(v) for v in value]
    if isinstance(value, dict):
        return {k: unstringify_big_ints(v) for k, v in value.items()}
    return value


def _as_uint(value: Any, label: str) -> str:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProvingError(f"Proof element {label} is not an unsigned integer")
    return str(value)


def to_call_args(proof: RawProof, public_signals: PublicSignals) -> ProofArtifact:
    """
    Flatten a snarkjs Groth16 proof into verifier call arguments.

    The G2 point `b` has its coordinate pairs swapped, matching snarkjs'
    exportSolidityCallData.
    """
    proof = unstringify_big_ints(proof)
    public_signals = unstringify_big_ints(public_signals)

    try:
        pi_a = proof["pi_a"]
        pi_b = proof["pi_b"]
        pi_c = proof["pi_c"]
        a = [_as_uint(pi_a[i], f"a[{i}]") for i in range(2)]
        b = [
            [_as_uint(pi_b[i][1], f"b[{i}][0]"), _as_uint(pi_b[i][0], f"b[{i}][1]")]
            for i in range(2)
        ]
        c = [_as_uint(pi_c[i], f"c[{i}]") for i in range(2)]
    except (KeyError, IndexError, TypeError) as e:
        raise ProvingError(f"Malformed Groth16 proof: {e}") from e

    if not isinstance(public_signals, list):
        raise ProvingError("Public signals must be a list")
    inputs = [
        _as_uint(s, f"input[{i}]") for i, s in enumerate(public_signals)
    ]

    return ProofArtifact(a=a, b=b, c=c, public_inputs=inputs)


class ProvingBackend(Protocol):
    async def full_prove(
        self, circuit_input: Dict[str, Any], artifacts: CircuitArtifacts
    ) -> Tuple[RawProof, PublicSignals]: ...

    async def verify(
        self,
        proof: RawProof,
        public_signals: PublicSignals,
        verification_key_path: Path,
    ) -> bool: ...


class SnarkjsBackend:
    """Runs `snarkjs groth16 fullprove` / `verify` in a temporary directory."""

    def __init__(self, snarkjs_bin: str = "snarkjs", timeout: Optional[float] = 300.0):
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def _run(self, args: Sequence[str], cwd: Path) -> Tuple[int, str, str]:
        cmd = self.snarkjs_bin.split() + list(args)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ConfigurationException(
                f"snarkjs not found ({self.snarkjs_bin}). Install it with "
                "`npm install -g snarkjs` or set ZKV_SNARKJS_BIN."
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            await self._kill(process)
            raise ProvingError(
                f"snarkjs {args[0]} {args[1]} timed out after {self.timeout}s"
            ) from e
        except BaseException:
            # Cancelled from outside; reap the child before its work dir is removed
            await asyncio.shield(self._kill(process))
            raise

        return (
            process.returncode,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def full_prove(
        self, circuit_input: Dict[str, Any], artifacts: CircuitArtifacts
    ) -> Tuple[RawProof, PublicSignals]:
        with tempfile.TemporaryDirectory(prefix="zkvote_") as tmp:
            work = Path(tmp)
            input_file = work / "input.json"
            proof_file = work / "proof.json"
            public_file = work / "public.json"
            input_file.write_text(json.dumps(circuit_input))

            code, stdout, stderr = await self._run(
                [
                    "groth16",
                    "fullprove",
                    str(input_file),
                    str(Path(artifacts.wasm_path).resolve()),
                    str(Path(artifacts.zkey_path).resolve()),
                    str(proof_file),
                    str(public_file),
                ],
                work,
            )
            # snarkjs reports some failures on stdout with a zero exit code
            if code != 0 or not proof_file.exists() or not public_file.exists():
                detail = (stderr or stdout).strip()
                raise ProvingError(
                    f"snarkjs rejected the witness: {detail[-500:]}",
                    stderr=stderr,
                )

            try:
                proof = json.loads(proof_file.read_text())
                public_signals = json.loads(public_file.read_text())
            except json.JSONDecodeError as e:
                raise ProvingError(f"snarkjs wrote unreadable output: {e}") from e

        return proof, public_signals

    async def verify(
        self,
        proof: RawProof,
        public_signals: PublicSignals,
        verification_key_path: Path,
    ) -> bool:
        with tempfile.TemporaryDirectory(prefix="zkvote_") as tmp:
            work = Path(tmp)
            proof_file = work / "proof.json"
            public_file = work / "public.json"
            proof_file.write_text(json.dumps(proof))
            public_file.write_text(json.dumps(public_signals))

            code, stdout, _ = await self._run(
                [
                    "groth16",
                    "verify",
                    str(Path(verification_key_path).resolve()),
                    str(public_file),
                    str(proof_file),
                ],
                work,
            )
        return code == 0 and "OK" in stdout


class ProofEngine:
    """Proves a MembershipWitness and returns verifier call arguments."""

    def __init__(self, backend: Optional[ProvingBackend] = None, verify: bool = False):
        self.backend = backend or SnarkjsBackend()
        self.verify_proofs = verify

    async def prove(
        self, witness: MembershipWitness, artifacts: CircuitArtifacts
    ) -> ProofArtifact:
        """
        Run the backend on the witness.

        Raises:
            ConfigurationException: missing artifacts or snarkjs binary
            ProvingError: the backend rejected the witness, or the proof
                failed local verification
        """
        artifacts.ensure_exists()
        _logger.info("Generating Groth16 proof")

        proof, public_signals = await self.backend.full_prove(
            dict(witness.to_circuit_input()), artifacts
        )

        if self.verify_proofs:
            if artifacts.verification_key_path is None:
                raise ConfigurationException(
                    "Proof verification requested but no verification key is configured"
                )
            if not await self.backend.verify(
                proof, public_signals, artifacts.verification_key_path
            ):
                raise ProvingError("Generated proof failed local verification")

        artifact = to_call_args(proof, public_signals)
        _logger.info(
            f"Proof ready with {len(artifact.public_inputs)} public inputs"
        )
        return artifact
