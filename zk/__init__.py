"""
Zero-Knowledge Proof Module for anonymous voting
Witness generation and groth16 proofs for census membership
"""

from .circuit import (
    CircuitInstance,
    WasmCircuitModule,
    CIRCUIT_ERRORS,
    fnv_hash,
)
from .witness import WitnessCalculator, WtnsFile, read_wtns, write_wtns
from .zk_proofs import (
    ZkInputs,
    ZkProof,
    Groth16Prover,
    build_prover_inputs,
    census_depth,
    compute_proof,
    compute_proof_async,
    compute_witness_bin,
    digest_vote_package,
    get_snark_process_id,
    normalize_census_siblings,
    verify_proof,
)

__all__ = [
    'CircuitInstance',
    'WasmCircuitModule',
    'CIRCUIT_ERRORS',
    'fnv_hash',
    'WitnessCalculator',
    'WtnsFile',
    'read_wtns',
    'write_wtns',
    'ZkInputs',
    'ZkProof',
    'Groth16Prover',
    'build_prover_inputs',
    'census_depth',
    'compute_proof',
    'compute_proof_async',
    'compute_witness_bin',
    'digest_vote_package',
    'get_snark_process_id',
    'normalize_census_siblings',
    'verify_proof',
]
