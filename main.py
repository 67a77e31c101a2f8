import argparse
import json
import logging
import sys
from pathlib import Path

from config.config import SystemConfig, load_config
from csp import AnonymousAuthFlow, AuthTokenStepResult, HttpCsp, ProcessStepResult
from utils.errors import VoteCredentialError
from utils.utils import PerformanceMonitor, setup_logging, validate_environment
from utils.wallet import EphemeralWallet
from zk.zk_proofs import ZkInputs, compute_proof, verify_proof

logger = logging.getLogger(__name__)


def run_auth(config: SystemConfig, user_id: str, wallet_key: str = None) -> int:
    csp = HttpCsp(config.csp.uri, config.csp.public_key,
                  config.csp.api_version, config.csp.timeout)
    wallet = EphemeralWallet.from_hex(wallet_key) if wallet_key else EphemeralWallet()
    flow = AnonymousAuthFlow(user_id, csp, wallet)

    def ask_otp(step: AuthTokenStepResult) -> str:
        return input(f"OTP sent to the phone ending in {step.phone_suffix}: ").strip()

    result = flow.resume()
    if isinstance(result, ProcessStepResult):
        print(f"Election {result.election_id}: "
              f"{result.remaining_attempts} attempt(s) left, consumed={result.consumed}")
        if result.consumed:
            print("This credential has already been used")
            return 1

    proof = flow.run(ask_otp)
    print(json.dumps(proof.to_dict(), indent=2))
    return 0


def run_prove(config: SystemConfig, inputs_path: Path, circuit_path: Path,
              zkey_path: Path, out_path: Path = None) -> int:
    data = json.loads(inputs_path.read_text())
    inputs = ZkInputs(
        process_id=data["processId"],
        census_root=data["censusRoot"],
        census_siblings=[int(s) for s in data.get("censusSiblings", [])],
        key_index=int(data["keyIndex"]),
        secret_key=int(data["secretKey"]),
        vote_package=bytes.fromhex(data["votePackage"]),
        nullifier=int(data["nullifier"]),
        max_size=data.get("maxSize"),
    )

    monitor = PerformanceMonitor()
    proof = compute_proof(inputs, circuit_path.read_bytes(), zkey_path.read_bytes(),
                          config.zk, monitor)
    if config.enable_metrics:
        monitor.save_metrics(config.log_dir / "prove_metrics.json")
    output = json.dumps(proof.to_dict(), indent=2)
    if out_path:
        out_path.write_text(output)
        print(f"Proof written to {out_path}")
    else:
        print(output)
    return 0


def run_verify(config: SystemConfig, vkey_path: Path, proof_path: Path) -> int:
    vkey = json.loads(vkey_path.read_text())
    data = json.loads(proof_path.read_text())
    valid = verify_proof(vkey, data["publicSignals"], data["proof"], config.zk)
    print("Proof is valid" if valid else "Proof is NOT valid")
    return 0 if valid else 1


def main():
    parser = argparse.ArgumentParser(
        description='Anonymous voting credentials and proofs')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    subparsers = parser.add_subparsers(dest='mode', required=True)

    auth = subparsers.add_parser('auth', help='Obtain a blind CA proof from the CSP')
    auth.add_argument('--user-id', required=True)
    auth.add_argument('--wallet-key', help='Hex private key of the ephemeral wallet')

    prove = subparsers.add_parser('prove', help='Compute an anonymous vote proof')
    prove.add_argument('--inputs', type=Path, required=True)
    prove.add_argument('--circuit', type=Path, required=True)
    prove.add_argument('--zkey', type=Path, required=True)
    prove.add_argument('--out', type=Path)

    verify = subparsers.add_parser('verify', help='Verify an anonymous vote proof')
    verify.add_argument('--vkey', type=Path, required=True)
    verify.add_argument('--proof', type=Path, required=True)

    subparsers.add_parser('env', help='Check the proving environment')

    args = parser.parse_args()

    config = load_config(Path(args.config))
    setup_logging(config.log_level, log_dir=config.log_dir)

    try:
        if args.mode == 'auth':
            code = run_auth(config, args.user_id, args.wallet_key)
        elif args.mode == 'prove':
            code = run_prove(config, args.inputs, args.circuit, args.zkey, args.out)
        elif args.mode == 'verify':
            code = run_verify(config, args.vkey, args.proof)
        else:
            issues = validate_environment(config.zk.snarkjs_command)
            for issue in issues:
                print(f"  - {issue}")
            code = 1 if issues else 0
    except VoteCredentialError as e:
        logger.error(f"{type(e).__name__}: {e}")
        code = 2

    sys.exit(code)


if __name__ == "__main__":
    main()
