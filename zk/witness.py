"""
Witness calculation and the binary `.wtns` container

Layout (all integers little-endian):

    "wtns" | u32 version=2 | u32 n_sections=2
    u32 id=1 | u64 len=8+n8 | u32 n8 | prime (n8 bytes) | u32 witness_size
    u32 id=2 | u64 len=n8*witness_size | witness_size elements of n8 bytes
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, List, Mapping

from utils.errors import SerializationError

from .circuit import CircuitInstance

logger = logging.getLogger(__name__)

WTNS_MAGIC = b"wtns"
WTNS_VERSION = 2
WTNS_SECTIONS = 2
SECTION_HEADER = 1
SECTION_WITNESS = 2


@dataclass
class WtnsFile:
    version: int
    n_sections: int
    n8: int
    prime: int
    witness_size: int
    witness: List[int] = field(default_factory=list)


class WitnessCalculator:
    """Computes witnesses through a single circuit instance"""

    def __init__(self, instance: CircuitInstance, sanity_check: bool = False):
        self.instance = instance
        self.sanity_check = sanity_check

    @property
    def n32(self) -> int:
        return self.instance.n32

    @property
    def prime(self) -> int:
        return self.instance.prime

    @property
    def witness_size(self) -> int:
        return self.instance.witness_size

    def circom_version(self):
        return self.instance.version

    def _do_witness_computation(self, inputs: Mapping[str, Any], sanity_check: bool):
        self.instance.set_inputs(inputs, self.sanity_check or sanity_check)

    def compute_witness(self, inputs: Mapping[str, Any], sanity_check: bool = False) -> List[int]:
        self._do_witness_computation(inputs, sanity_check)
        return self.instance.read_witness()

    def compute_bin_witness(self, inputs: Mapping[str, Any], sanity_check: bool = False) -> bytes:
        """Flat witness values as 32-bit limbs in module order"""
        self._do_witness_computation(inputs, sanity_check)
        out = bytearray()
        for i in range(self.witness_size):
            limbs = self.instance.read_witness_limbs(i)
            out += struct.pack(f"<{self.n32}I", *limbs)
        return bytes(out)

    def compute_wtns_bin(self, inputs: Mapping[str, Any], sanity_check: bool = False) -> bytes:
        self._do_witness_computation(inputs, sanity_check)

        n8 = self.n32 * 4
        out = bytearray()
        out += WTNS_MAGIC
        out += struct.pack("<II", WTNS_VERSION, WTNS_SECTIONS)

        out += struct.pack("<IQ", SECTION_HEADER, 8 + n8)
        out += struct.pack("<I", n8)
        out += struct.pack(f"<{self.n32}I", *self.instance.raw_prime_limbs())
        out += struct.pack("<I", self.witness_size)

        out += struct.pack("<IQ", SECTION_WITNESS, n8 * self.witness_size)
        for i in range(self.witness_size):
            out += struct.pack(f"<{self.n32}I", *self.instance.read_witness_limbs(i))

        logger.debug(f"Serialized witness: {self.witness_size} elements, {len(out)} bytes")
        return bytes(out)


def write_wtns(prime: int, witness: List[int], n8: int = 32) -> bytes:
    """Serializes already computed field elements into a `.wtns` binary"""
    out = bytearray(WTNS_MAGIC)
    out += struct.pack("<II", WTNS_VERSION, WTNS_SECTIONS)
    out += struct.pack("<IQI", SECTION_HEADER, 8 + n8, n8)
    try:
        out += prime.to_bytes(n8, "little")
        out += struct.pack("<I", len(witness))
        out += struct.pack("<IQ", SECTION_WITNESS, n8 * len(witness))
        for value in witness:
            out += value.to_bytes(n8, "little")
    except OverflowError as e:
        raise SerializationError(f"Field element does not fit in {n8} bytes") from e
    return bytes(out)


def read_wtns(data: bytes) -> WtnsFile:
    """Parses a `.wtns` binary, checking every length against the header"""
    if len(data) < 12:
        raise SerializationError("Witness binary is truncated")
    if data[:4] != WTNS_MAGIC:
        raise SerializationError(f"Invalid witness magic: {data[:4]!r}")

    version, n_sections = struct.unpack_from("<II", data, 4)
    if version != WTNS_VERSION:
        raise SerializationError(f"Unsupported witness version: {version}")

    sections = {}
    pos = 12
    for _ in range(n_sections):
        if pos + 12 > len(data):
            raise SerializationError("Witness section table is truncated")
        section_id, length = struct.unpack_from("<IQ", data, pos)
        pos += 12
        if pos + length > len(data):
            raise SerializationError(f"Witness section {section_id} is truncated")
        sections[section_id] = (pos, length)
        pos += length

    if pos != len(data):
        raise SerializationError("Trailing bytes after the last witness section")
    if SECTION_HEADER not in sections or SECTION_WITNESS not in sections:
        raise SerializationError("Witness binary lacks the header or values section")

    start, length = sections[SECTION_HEADER]
    if length < 8:
        raise SerializationError("Witness header section is too short")
    n8 = struct.unpack_from("<I", data, start)[0]
    if n8 == 0 or length != 8 + n8:
        raise SerializationError(f"Invalid witness header length {length} for n8={n8}")
    prime = int.from_bytes(data[start + 4:start + 4 + n8], "little")
    witness_size = struct.unpack_from("<I", data, start + 4 + n8)[0]

    start, length = sections[SECTION_WITNESS]
    if length != n8 * witness_size:
        raise SerializationError(
            f"Witness section holds {length} bytes, expected {n8 * witness_size}")
    witness = [
        int.from_bytes(data[start + i * n8:start + (i + 1) * n8], "little")
        for i in range(witness_size)
    ]

    return WtnsFile(
        version=version,
        n_sections=n_sections,
        n8=n8,
        prime=prime,
        witness_size=witness_size,
        witness=witness,
    )
