from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

import yaml

logger = logging.getLogger(__name__)

# BN254 scalar field
SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617


@dataclass
class CSPConfig:
    uri: str = "http://localhost:5000"
    public_key: str = ""
    api_version: str = "v1"
    timeout: float = 3.0
    auth_type: str = "blind"


@dataclass
class ZKConfig:
    snarkjs_command: str = "snarkjs"
    max_census_size: int = 2 ** 20
    field_prime: int = SNARK_SCALAR_FIELD
    sanity_check: bool = True
    validate_field_range: bool = True
    proof_timeout: int = 120
    work_dir: Optional[Path] = None

    def __post_init__(self):
        if self.work_dir is not None:
            self.work_dir = Path(self.work_dir)


@dataclass
class SystemConfig:
    csp: CSPConfig = field(default_factory=CSPConfig)
    zk: ZKConfig = field(default_factory=ZKConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_level: str = "INFO"
    enable_debug_mode: bool = False
    enable_metrics: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        if self.enable_debug_mode:
            self.log_level = "DEBUG"


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            csp_data = config_data.get('csp', {})
            csp_config = CSPConfig(
                uri=csp_data.get('uri', 'http://localhost:5000'),
                public_key=csp_data.get('public_key', ''),
                api_version=csp_data.get('api_version', 'v1'),
                timeout=float(csp_data.get('timeout', 3.0)),
                auth_type=csp_data.get('auth_type', 'blind')
            )

            zk_data = config_data.get('zk_proofs', {})
            zk_config = ZKConfig(
                snarkjs_command=zk_data.get('snarkjs_command', 'snarkjs'),
                max_census_size=int(zk_data.get('max_census_size', 2 ** 20)),
                field_prime=int(zk_data.get('field_prime', SNARK_SCALAR_FIELD)),
                sanity_check=zk_data.get('sanity_check', True),
                validate_field_range=zk_data.get('validate_field_range', True),
                proof_timeout=zk_data.get('proof_timeout', 120),
                work_dir=zk_data.get('work_dir')
            )

            return SystemConfig(
                csp=csp_config,
                zk=zk_config,
                log_dir=Path(config_data.get('log_dir', 'logs')),
                log_level=config_data.get('log_level', 'INFO'),
                enable_debug_mode=config_data.get('enable_debug_mode', False),
                enable_metrics=config_data.get('enable_metrics', False)
            )
        except (OSError, yaml.YAMLError, ValueError, AttributeError) as e:
            logger.warning(f"Could not load config file {config_path}: {e}")
            logger.warning("Using default configuration")

    return SystemConfig()


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    config_data = {
        'csp': {
            'uri': config.csp.uri,
            'public_key': config.csp.public_key,
            'api_version': config.csp.api_version,
            'timeout': config.csp.timeout,
            'auth_type': config.csp.auth_type
        },
        'zk_proofs': {
            'snarkjs_command': config.zk.snarkjs_command,
            'max_census_size': config.zk.max_census_size,
            'field_prime': str(config.zk.field_prime),
            'sanity_check': config.zk.sanity_check,
            'validate_field_range': config.zk.validate_field_range,
            'proof_timeout': config.zk.proof_timeout,
            'work_dir': str(config.zk.work_dir) if config.zk.work_dir else None
        },
        'log_dir': str(config.log_dir),
        'log_level': config.log_level,
        'enable_debug_mode': config.enable_debug_mode,
        'enable_metrics': config.enable_metrics
    }

    try:
        with open(config_path, 'w') as f:
            yaml.dump(config_data, f, default_flow_style=False)
    except OSError as e:
        logger.warning(f"Could not save config file {config_path}: {e}")
