"""
Circuit module boundary

A compiled circom witness generator talks through a small shared read/write
memory window of `n32` 32-bit limbs. Signals are addressed by the 64-bit FNV-1a
hash of their name, passed as two 32-bit words, plus the position inside the
signal array. `CircuitInstance` hides that protocol behind
`write_signal(name, index, value)` / `read_witness()`.

An instance owns its memory; it must serve a single witness computation at
a time. `WasmCircuitModule.instantiate()` returns a fresh one per call.
"""

import logging
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import wasmtime

from utils.errors import WitnessComputationError

logger = logging.getLogger(__name__)

FNV64_OFFSET = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
UINT64_MASK = (1 << 64) - 1

LIMB_RADIX = 1 << 32
UINT32_MASK = 0xFFFFFFFF

RUNTIME_MODULE = "runtime"

CIRCUIT_ERRORS = {
    1: "Signal not found.",
    2: "Too many signals set.",
    3: "Signal already set.",
    4: "Assert Failed.",
    5: "Not enough memory.",
}


def fnv_hash(name: str) -> Tuple[int, int]:
    """64-bit FNV-1a of a signal name, split into (high, low) 32-bit words"""
    h = FNV64_OFFSET
    for ch in name:
        h ^= ord(ch)
        h = (h * FNV64_PRIME) & UINT64_MASK
    return h >> 32, h & UINT32_MASK


def _i32(value: int) -> int:
    """Unsigned 32-bit word as the signed value wasm i32 parameters expect"""
    value &= UINT32_MASK
    return value - LIMB_RADIX if value >= 1 << 31 else value


def to_array32(value: int, size: int) -> List[int]:
    """Big-endian 32-bit limbs of `value`, left padded to `size`"""
    if value < 0:
        raise WitnessComputationError("Signal values must be non-negative")
    res = []
    rem = value
    while rem:
        res.insert(0, rem % LIMB_RADIX)
        rem //= LIMB_RADIX
    if len(res) > size:
        raise WitnessComputationError(
            f"Value does not fit in {size} limbs of 32 bits")
    return [0] * (size - len(res)) + res


def from_array32(arr: Iterable[int]) -> int:
    res = 0
    for limb in arr:
        res = res * LIMB_RADIX + (limb & UINT32_MASK)
    return res


def flat_array(value) -> List[Any]:
    if isinstance(value, (list, tuple)):
        res = []
        for item in value:
            res.extend(flat_array(item))
        return res
    return [value]


class CircuitInstance:
    """One live circuit module instance and its shared memory window

    `exports` maps export names to callables already bound to the module's
    store. The runtime hooks (`exception_handler`, `print_error_message`, ...)
    are what the module imports from its host.
    """

    def __init__(self, exports: Optional[Mapping[str, Callable]] = None):
        self._exports: Dict[str, Callable] = {}
        self._fault: Optional[WitnessComputationError] = None
        self._messages: List[str] = []
        self._busy = False
        self.n32 = 0
        self.prime = 0
        self.witness_size = 0
        self.version = None
        if exports is not None:
            self.attach(exports)

    def attach(self, exports: Mapping[str, Callable]):
        self._exports = dict(exports)

        self.version = self._call("getVersion") if "getVersion" in self._exports else 1
        self.n32 = self._call("getFieldNumLen32")
        self._call("getRawPrime")
        self.prime = from_array32(self._read_limbs())
        self.witness_size = self._call("getWitnessSize")
        logger.debug(
            f"Circuit module v{self.version}: n32={self.n32}, witness size={self.witness_size}")

    @property
    def n8(self) -> int:
        return self.n32 * 4

    # ------------------------------------------------------------------
    # runtime imports

    def exception_handler(self, code: int):
        description = CIRCUIT_ERRORS.get(code, "Unknown error")
        pending = self._drain_messages()
        message = f"{description} {pending}".strip()
        self._fault = WitnessComputationError(message, code=code)
        raise self._fault

    def print_error_message(self):
        self._messages.append(self._get_message())

    def write_buffer_message(self):
        self._messages.append(self._get_message())

    def show_shared_rw_memory(self):
        pass

    def _get_message(self) -> str:
        get_char = self._exports.get("getMessageChar")
        if get_char is None:
            return ""
        chars = []
        c = get_char()
        while c != 0:
            chars.append(chr(c))
            c = get_char()
        return "".join(chars)

    def _drain_messages(self) -> str:
        pending = "\n".join(m for m in self._messages if m)
        self._messages.clear()
        trailing = self._get_message()
        return "\n".join(p for p in (pending, trailing) if p)

    # ------------------------------------------------------------------
    # shared memory protocol

    def _call(self, name: str, *args):
        self._fault = None
        try:
            return self._exports[name](*args)
        except WitnessComputationError:
            raise
        except KeyError:
            raise WitnessComputationError(f"Circuit module does not export {name}")
        except Exception as e:
            # host exceptions surface as traps from the runtime
            if self._fault is not None:
                raise self._fault from e
            raise WitnessComputationError(f"Circuit module trapped in {name}: {e}") from e

    def _read_word(self, j: int) -> int:
        return self._call("readSharedRWMemory", j) & UINT32_MASK

    def _read_limbs(self) -> List[int]:
        arr = [0] * self.n32
        for j in range(self.n32):
            arr[self.n32 - 1 - j] = self._read_word(j)
        return arr

    def init(self, sanity_check: bool = False):
        self._call("init", 1 if sanity_check else 0)

    def write_signal(self, name: str, index: int, value: int):
        h_msb, h_lsb = fnv_hash(name)
        self.write_signal_at(h_msb, h_lsb, index, value)

    def write_signal_at(self, h_msb: int, h_lsb: int, index: int, value: int):
        limbs = to_array32(value, self.n32)
        for j in range(self.n32):
            self._call("writeSharedRWMemory", j, _i32(limbs[self.n32 - 1 - j]))
        self._call("setInputSignal", _i32(h_msb), _i32(h_lsb), index)

    def set_inputs(self, inputs: Mapping[str, Any], sanity_check: bool = False):
        """Initializes the instance and assigns every input signal"""
        if self._busy:
            raise WitnessComputationError("Circuit instance is already computing a witness")
        self._busy = True
        try:
            self.init(sanity_check)
            for name, value in inputs.items():
                h_msb, h_lsb = fnv_hash(name)
                for i, element in enumerate(flat_array(value)):
                    self.write_signal_at(h_msb, h_lsb, i, int(element))
            if "computeWitness" in self._exports:
                self._call("computeWitness")
        finally:
            self._busy = False

    def read_witness_limbs(self, i: int) -> List[int]:
        """Limbs of witness element i, least significant first"""
        self._call("getWitness", i)
        return [self._read_word(j) for j in range(self.n32)]

    def read_witness(self) -> List[int]:
        return [
            from_array32(reversed(self.read_witness_limbs(i)))
            for i in range(self.witness_size)
        ]

    def raw_prime_limbs(self) -> List[int]:
        self._call("getRawPrime")
        return [self._read_word(j) for j in range(self.n32)]


class WasmCircuitModule:
    """Compiled circuit witness generator (WebAssembly)"""

    def __init__(self, wasm: bytes, engine: Optional[wasmtime.Engine] = None):
        self.engine = engine or wasmtime.Engine()
        try:
            self.module = wasmtime.Module(self.engine, wasm)
        except wasmtime.WasmtimeError as e:
            raise WitnessComputationError(f"Invalid circuit module: {e}") from e

    def instantiate(self) -> CircuitInstance:
        store = wasmtime.Store(self.engine)
        linker = wasmtime.Linker(self.engine)
        instance = CircuitInstance()

        i32 = wasmtime.ValType.i32()
        hooks = {
            "exceptionHandler": (wasmtime.FuncType([i32], []), instance.exception_handler),
            "printErrorMessage": (wasmtime.FuncType([], []), instance.print_error_message),
            "writeBufferMessage": (wasmtime.FuncType([], []), instance.write_buffer_message),
            "showSharedRWMemory": (wasmtime.FuncType([], []), instance.show_shared_rw_memory),
        }
        for name, (func_type, callback) in hooks.items():
            linker.define_func(RUNTIME_MODULE, name, func_type, callback)

        missing = [
            f"{imp.module}.{imp.name}" for imp in self.module.imports
            if imp.module != RUNTIME_MODULE or imp.name not in hooks
        ]
        if missing:
            raise WitnessComputationError(
                f"Could not instantiate circuit module: unresolved imports {', '.join(missing)}")

        try:
            wasm_instance = linker.instantiate(store, self.module)
        except wasmtime.WasmtimeError as e:
            raise WitnessComputationError(f"Could not instantiate circuit module: {e}") from e

        module_exports = wasm_instance.exports(store)
        exports = {}
        for export_type in self.module.exports:
            item = module_exports[export_type.name]
            if isinstance(item, wasmtime.Func):
                exports[export_type.name] = partial(item, store)

        instance.attach(exports)
        return instance
