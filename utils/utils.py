"""
Shared utilities for the credential and proof modules
Logging setup, hex / little-endian encoding helpers and performance monitoring
"""

import logging
import json
import time
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional, Union
from dataclasses import dataclass, asdict

import numpy as np
import psutil

from .errors import ValidationError


@dataclass
class PerformanceMetrics:
    operation: str
    duration_seconds: float
    cpu_percent: float
    memory_mb: float
    timestamp: float
    additional_data: Dict[str, Any] = None


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None,
                  log_dir: Path = Path("logs")):
    """Setup logging with fallback if directories don't exist"""
    if log_file is None:
        log_file = Path(log_dir) / \
            f"vote_credentials_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")

    return logger


# ============================================================================
# HEX AND BYTE ENCODING
# ============================================================================


def strip0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def hex_to_bytes(value: str) -> bytes:
    """Decode a hex string with or without the 0x prefix"""
    try:
        return bytes.fromhex(strip0x(value))
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid hex string: {e}")


def normalize_process_id(process_id: Optional[str]) -> str:
    """Strip the prefix and check the id holds exactly 32 bytes"""
    if not process_id or not isinstance(process_id, str):
        raise ValidationError("Invalid process ID")
    process_id = strip0x(process_id)
    if len(process_id) != 64:
        raise ValidationError("Invalid process ID")
    hex_to_bytes(process_id)
    return process_id.lower()


def bytes_le_to_int(data: bytes) -> int:
    return int.from_bytes(data, "little")


def truncate(value: Optional[str], keep: int = 8) -> str:
    """Shorten an id or token for log output"""
    if not value:
        return "<none>"
    return value if len(value) <= keep else f"{value[:keep]}..."


# ============================================================================
# PERFORMANCE MONITORING
# ============================================================================


class PerformanceMonitor:
    """Performance monitor with context manager support"""

    def __init__(self):
        self.metrics: List[PerformanceMetrics] = []
        self.process = psutil.Process()

    def start_operation(self, operation_name: str) -> 'OperationContext':
        """Start monitoring an operation - returns context manager"""
        return OperationContext(self, operation_name)

    def record_metric(self, metric: PerformanceMetrics):
        self.metrics.append(metric)

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary grouped by operation"""
        if not self.metrics:
            return {
                'total_operations': 0,
                'total_duration': 0.0,
                'operations': {}
            }

        operation_groups: Dict[str, List[PerformanceMetrics]] = {}
        for metric in self.metrics:
            operation_groups.setdefault(metric.operation, []).append(metric)

        summary = {
            'total_operations': len(self.metrics),
            'operations': {}
        }

        for op_name, metrics in operation_groups.items():
            durations = [m.duration_seconds for m in metrics]
            memory_usages = [m.memory_mb for m in metrics if m.memory_mb > 0]
            cpu_usages = [m.cpu_percent for m in metrics]
            total = sum(durations)

            summary['operations'][op_name] = {
                'count': len(metrics),
                'total_duration': total,
                'avg_duration': float(np.mean(durations)),
                'min_duration': min(durations),
                'max_duration': max(durations),
                'std_duration': float(np.std(durations)) if len(durations) > 1 else 0.0,
                'peak_memory_mb': max(memory_usages) if memory_usages else 0.0,
                'avg_cpu_percent': float(np.mean(cpu_usages)),
                'failures': sum(1 for m in metrics
                                if m.additional_data and m.additional_data.get('exception')),
            }

        summary['total_duration'] = sum(
            op_data['total_duration']
            for op_data in summary['operations'].values()
        )

        return summary

    def save_metrics(self, filepath: Path):
        """Save metrics to a JSON file"""
        filepath.parent.mkdir(parents=True, exist_ok=True)

        metrics_data = {
            'metrics': [asdict(m) for m in self.metrics],
            'summary': self.get_summary(),
            'timestamp': datetime.now().isoformat()
        }

        with open(filepath, 'w') as f:
            json.dump(metrics_data, f, indent=2, default=str)


class OperationContext:
    """Context manager for performance monitoring"""

    def __init__(self, monitor: PerformanceMonitor, operation_name: str):
        self.monitor = monitor
        self.operation_name = operation_name
        self.start_time = None
        self.start_memory = 0.0

    def __enter__(self):
        self.start_time = time.time()
        try:
            self.start_memory = self.monitor.process.memory_info().rss / 1024 / 1024
            # first call starts the CPU sampling interval
            self.monitor.process.cpu_percent(None)
        except psutil.Error as e:
            logging.debug(f"Performance monitoring error: {e}")
            self.start_memory = 0.0
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time

        try:
            end_memory = self.monitor.process.memory_info().rss / 1024 / 1024
            cpu_percent = self.monitor.process.cpu_percent(None)
        except psutil.Error as e:
            logging.debug(f"Performance monitoring error: {e}")
            end_memory = self.start_memory
            cpu_percent = 0.0

        metric = PerformanceMetrics(
            operation=self.operation_name,
            duration_seconds=duration,
            cpu_percent=cpu_percent,
            memory_mb=max(self.start_memory, end_memory),
            timestamp=self.start_time,
            additional_data={'exception': exc_type is not None}
        )

        self.monitor.record_metric(metric)


# ============================================================================
# ENVIRONMENT
# ============================================================================


def check_command_exists(command: str) -> bool:
    """Check if command exists in system PATH"""
    return shutil.which(command) is not None


def validate_environment(snarkjs_command: str = "snarkjs") -> List[str]:
    """Validate system environment and return list of issues"""
    issues = []

    if sys.version_info < (3, 9):
        issues.append(
            f"Python version {sys.version} is too old. Requires Python 3.9+")

    if not check_command_exists("node"):
        issues.append("Command not found: node (needed by snarkjs)")

    if not check_command_exists(snarkjs_command):
        issues.append(
            f"Command not found: {snarkjs_command} (needed for groth16 proving)")

    return issues


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format"""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"


__all__ = [
    'PerformanceMetrics',
    'PerformanceMonitor',
    'OperationContext',
    'setup_logging',
    'strip0x',
    'hex_to_bytes',
    'normalize_process_id',
    'bytes_le_to_int',
    'truncate',
    'validate_environment',
    'check_command_exists',
    'format_duration',
]
