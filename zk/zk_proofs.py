"""
Anonymous voting proofs

Builds the census membership witness for a vote, serializes it to `.wtns` and
runs the groth16 prover/verifier from snarkjs on it.
"""

import asyncio
import hashlib
import json
import logging
import subprocess
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from config.config import ZKConfig
from utils.errors import ProverError, SerializationError, ValidationError
from utils.utils import (
    PerformanceMonitor,
    bytes_le_to_int,
    format_duration,
    hex_to_bytes,
    normalize_process_id,
)

from .circuit import WasmCircuitModule
from .witness import WitnessCalculator

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(thread_name_prefix="witness")


@dataclass
class ZkInputs:
    """Private and public inputs of the anonymous vote circuit"""
    process_id: Union[str, Sequence[int]]
    census_root: str  # hex, little-endian
    census_siblings: List[int]
    key_index: int
    secret_key: int
    vote_package: bytes
    nullifier: int
    max_size: Optional[int] = None


@dataclass
class ZkProof:
    proof: Dict[str, Any]
    public_signals: List[str]
    generation_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"proof": self.proof, "publicSignals": self.public_signals}


# ============================================================================
# INPUT ENCODING
# ============================================================================


def digest_vote_package(vote_package: bytes) -> List[int]:
    """sha256 of the vote package as two little-endian 128-bit limbs"""
    digest = hashlib.sha256(bytes(vote_package)).digest()
    return [bytes_le_to_int(digest[:16]), bytes_le_to_int(digest[16:])]


def get_snark_process_id(process_id: str) -> List[int]:
    """32-byte process id as two little-endian 128-bit limbs"""
    pid = hex_to_bytes(normalize_process_id(process_id))
    return [bytes_le_to_int(pid[:16]), bytes_le_to_int(pid[16:])]


def census_depth(max_size: int) -> int:
    if not isinstance(max_size, int) or max_size < 1:
        raise ValidationError(f"Invalid census max size: {max_size!r}")
    return (max_size - 1).bit_length() + 1


def normalize_census_siblings(siblings: Sequence[int], max_size: int) -> List[int]:
    """Right-pads the sibling path with zeros up to the circuit depth"""
    depth = census_depth(max_size)
    siblings = [int(s) for s in siblings]
    if len(siblings) > depth:
        raise ValidationError(
            f"Census path has {len(siblings)} siblings, the circuit supports {depth}")
    return siblings + [0] * (depth - len(siblings))


def _check_field_range(name: str, values: Sequence[int], prime: int):
    for value in values:
        if not 0 <= value < prime:
            raise ValidationError(f"Input signal {name} is not a field element")


def build_prover_inputs(inputs: ZkInputs, config: ZKConfig) -> Dict[str, Any]:
    """Maps `ZkInputs` onto the circuit's named input signals"""
    max_size = inputs.max_size if inputs.max_size is not None else config.max_census_size

    if isinstance(inputs.process_id, str):
        process_id = get_snark_process_id(inputs.process_id)
    else:
        process_id = [int(v) for v in inputs.process_id]
        if len(process_id) != 2:
            raise ValidationError("The process id must have two limbs")

    prover_inputs = {
        "censusRoot": bytes_le_to_int(hex_to_bytes(inputs.census_root)),
        "censusSiblings": normalize_census_siblings(inputs.census_siblings, max_size),
        "index": int(inputs.key_index),
        "secretKey": int(inputs.secret_key),
        "voteHash": digest_vote_package(inputs.vote_package),
        "processId": process_id,
        "nullifier": int(inputs.nullifier),
    }

    if config.validate_field_range:
        for name, value in prover_inputs.items():
            _check_field_range(name, value if isinstance(value, list) else [value],
                               config.field_prime)

    return prover_inputs


# ============================================================================
# GROTH16 (snarkjs)
# ============================================================================


def _to_snarkjs_proof(proof: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return {
            "pi_a": proof["a"],
            "pi_b": proof["b"],
            "pi_c": proof["c"],
            "protocol": proof.get("protocol", "groth16"),
        }
    except KeyError as e:
        raise ValidationError(f"Proof lacks field {e}")


def _from_snarkjs_proof(proof: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return {
            "a": [str(v) for v in proof["pi_a"]],
            "b": [[str(v) for v in pair] for pair in proof["pi_b"]],
            "c": [str(v) for v in proof["pi_c"]],
            "protocol": proof["protocol"],
        }
    except (KeyError, TypeError) as e:
        raise SerializationError(f"Malformed prover output: {e}")


class Groth16Prover:
    """groth16 prove/verify through the snarkjs command line"""

    def __init__(self, config: Optional[ZKConfig] = None):
        self.config = config or ZKConfig()

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        cmd = [self.config.snarkjs_command, 'groth16'] + args
        try:
            return subprocess.run(cmd, capture_output=True, text=True,
                                  timeout=self.config.proof_timeout)
        except FileNotFoundError as e:
            raise ProverError(f"snarkjs not found: {self.config.snarkjs_command}") from e
        except subprocess.TimeoutExpired as e:
            raise ProverError(f"snarkjs timed out after {self.config.proof_timeout}s") from e

    def prove(self, proving_key: bytes, wtns: bytes) -> Tuple[Dict[str, Any], List[str]]:
        with tempfile.TemporaryDirectory(dir=self.config.work_dir) as temp_dir:
            temp_path = Path(temp_dir)

            zkey_file = temp_path / "circuit.zkey"
            zkey_file.write_bytes(proving_key)
            wtns_file = temp_path / "witness.wtns"
            wtns_file.write_bytes(wtns)
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"

            result = self._run([
                'prove',
                str(zkey_file),
                str(wtns_file),
                str(proof_file),
                str(public_file)
            ])
            if result.returncode != 0:
                raise ProverError(f"Proof generation failed: {result.stderr or result.stdout}")

            try:
                proof = json.loads(proof_file.read_text())
                public_signals = json.loads(public_file.read_text())
            except (OSError, ValueError) as e:
                raise SerializationError(f"Could not read prover output: {e}") from e

        return _from_snarkjs_proof(proof), [str(s) for s in public_signals]

    def verify(self, verification_key: Dict[str, Any], public_signals: Sequence,
               proof: Dict[str, Any]) -> bool:
        gproof = _to_snarkjs_proof(proof)

        with tempfile.TemporaryDirectory(dir=self.config.work_dir) as temp_dir:
            temp_path = Path(temp_dir)

            vkey_file = temp_path / "vkey.json"
            vkey_file.write_text(json.dumps(verification_key))
            public_file = temp_path / "public.json"
            public_file.write_text(json.dumps([str(s) for s in public_signals]))
            proof_file = temp_path / "proof.json"
            proof_file.write_text(json.dumps(gproof))

            result = self._run([
                'verify',
                str(vkey_file),
                str(public_file),
                str(proof_file)
            ])

        is_valid = result.returncode == 0 and "OK" in result.stdout
        if not is_valid:
            logger.info(f"Proof rejected: {(result.stdout or result.stderr).strip()}")
        return is_valid


# ============================================================================
# PUBLIC API
# ============================================================================


def compute_witness_bin(inputs: ZkInputs, circuit: Union[bytes, WasmCircuitModule],
                        config: Optional[ZKConfig] = None) -> bytes:
    """Runs the circuit on the vote inputs and returns the `.wtns` binary"""
    config = config or ZKConfig()
    prover_inputs = build_prover_inputs(inputs, config)

    module = WasmCircuitModule(circuit) if isinstance(circuit, (bytes, bytearray)) else circuit
    calculator = WitnessCalculator(module.instantiate(), sanity_check=config.sanity_check)
    return calculator.compute_wtns_bin(prover_inputs)


def compute_proof(inputs: ZkInputs, circuit: Union[bytes, WasmCircuitModule],
                  proving_key: bytes, config: Optional[ZKConfig] = None,
                  monitor: Optional[PerformanceMonitor] = None) -> ZkProof:
    """Computes the groth16 proof of an anonymous vote

    Args:
        inputs: census path, voter secret, vote package and nullifier
        circuit: compiled witness generator (wasm bytes or a compiled module)
        proving_key: the circuit's zkey
    """
    config = config or ZKConfig()
    monitor = monitor or PerformanceMonitor()
    start_time = time.time()

    with monitor.start_operation("compute_witness"):
        wtns = compute_witness_bin(inputs, circuit, config)

    with monitor.start_operation("groth16_prove"):
        proof, public_signals = Groth16Prover(config).prove(proving_key, wtns)

    generation_time = time.time() - start_time
    logger.info(f"Generated anonymous vote proof in {format_duration(generation_time)}")

    return ZkProof(proof=proof, public_signals=public_signals,
                   generation_time=generation_time)


async def compute_proof_async(inputs: ZkInputs, circuit: Union[bytes, WasmCircuitModule],
                              proving_key: bytes, config: Optional[ZKConfig] = None) -> ZkProof:
    """`compute_proof` off the event loop, in a worker thread"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        _executor, compute_proof, inputs, circuit, proving_key, config)


def verify_proof(verification_key: Dict[str, Any], public_signals: Sequence,
                 proof: Union[ZkProof, Dict[str, Any]],
                 config: Optional[ZKConfig] = None) -> bool:
    if isinstance(proof, ZkProof):
        proof = proof.proof
    return Groth16Prover(config).verify(verification_key, public_signals, proof)
