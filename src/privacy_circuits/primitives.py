"""
privacy_circuits/primitives.py
Registry of circuit-friendly hash primitives.

The primitives are circomlib's Poseidon, Pedersen (over Baby Jubjub) and
MiMC sponge. They are consumed as black boxes: the contract of each one
is fixed here, and `CircomlibBackend` satisfies it by delegating to
circomlibjs in a long-lived Node.js process, which guarantees the same
outputs as the circuits and the contracts.
"""
import asyncio
import json
import logging
import os
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from typing import IO, Any, Callable, Collection, FrozenSet, List, Optional, Protocol, Sequence, Tuple

from .errors import FeatureNotEnabledError, PrimitiveBackendError

logger = logging.getLogger(__name__)

PRIMITIVE_POSEIDON = 'poseidon'
PRIMITIVE_PEDERSEN = 'pedersen'
PRIMITIVE_MIMC_SPONGE = 'mimcsponge'

Poseidon = Callable[[Sequence[int]], int]
Pedersen = Callable[[bytes], int]
MimcSponge = Callable[[Sequence[Tuple[int, int]]], List[int]]


def required_primitives(use_credit_note_pool: bool) -> FrozenSet[str]:
    """Primitives needed by the provers for the given feature set."""
    if use_credit_note_pool:
        return frozenset({PRIMITIVE_POSEIDON, PRIMITIVE_PEDERSEN, PRIMITIVE_MIMC_SPONGE})
    return frozenset({PRIMITIVE_POSEIDON})


@dataclass(frozen=True)
class PrimitiveRegistry:
    """Built primitives, written once and read-only afterwards.

    Contracts:

    - ``poseidon(inputs)``: field elements to one field element
    - ``pedersen(preimage)``: bytes to the x coordinate of the unpacked
      Baby Jubjub point
    - ``mimc_sponge(pairs)``: ``[(left, right), ...]`` to the parents
      ``multiHash([left, right])`` with key 0 and one output
    """
    poseidon_fn: Optional[Poseidon] = None
    pedersen_fn: Optional[Pedersen] = None
    mimc_sponge_fn: Optional[MimcSponge] = None

    @property
    def available(self) -> FrozenSet[str]:
        names = set()
        if self.poseidon_fn is not None:
            names.add(PRIMITIVE_POSEIDON)
        if self.pedersen_fn is not None:
            names.add(PRIMITIVE_PEDERSEN)
        if self.mimc_sponge_fn is not None:
            names.add(PRIMITIVE_MIMC_SPONGE)
        return frozenset(names)

    def poseidon(self, inputs: Sequence[int]) -> int:
        if self.poseidon_fn is None:
            raise FeatureNotEnabledError("Poseidon was not built")
        return self.poseidon_fn([int(value) for value in inputs])

    def pedersen(self, preimage: bytes) -> int:
        if self.pedersen_fn is None:
            raise FeatureNotEnabledError(
                "Pedersen hash was not built; enable the credit note pool"
            )
        return self.pedersen_fn(bytes(preimage))

    def mimc_sponge(self, pairs: Sequence[Tuple[int, int]]) -> List[int]:
        if self.mimc_sponge_fn is None:
            raise FeatureNotEnabledError(
                "MiMC sponge was not built; enable the credit note pool"
            )
        return self.mimc_sponge_fn([(int(left), int(right)) for left, right in pairs])


class PrimitiveBackend(Protocol):
    """Something that can build a `PrimitiveRegistry`."""

    async def build(self, names: Collection[str]) -> PrimitiveRegistry:
        ...

    def close(self) -> None:
        ...


# Runs under `node -e`; one JSON request per stdin line, one reply per stdout line.
_BRIDGE_SOURCE = r"""
const readline = require('readline');
const circomlib = require('circomlibjs');

let poseidon = null;
let babyJub = null;
let pedersen = null;
let mimcSponge = null;

const handlers = {
  async init({ primitives }) {
    if (primitives.includes('poseidon')) poseidon = await circomlib.buildPoseidon();
    if (primitives.includes('pedersen')) {
      babyJub = await circomlib.buildBabyjub();
      pedersen = await circomlib.buildPedersenHash();
    }
    if (primitives.includes('mimcsponge')) mimcSponge = await circomlib.buildMimcSponge();
    return primitives;
  },
  poseidon({ inputs }) {
    return poseidon.F.toString(poseidon(inputs.map(BigInt)));
  },
  pedersen({ preimage }) {
    const point = babyJub.unpackPoint(pedersen.hash(Buffer.from(preimage, 'hex')));
    return babyJub.F.toString(point[0]);
  },
  mimcsponge({ pairs }) {
    return pairs.map(([left, right]) =>
      mimcSponge.F.toString(mimcSponge.multiHash([BigInt(left), BigInt(right)])));
  },
};

const reply = (message) => process.stdout.write(JSON.stringify(message) + '\n');
const lines = readline.createInterface({ input: process.stdin });
let queue = Promise.resolve();
lines.on('line', (line) => {
  queue = queue.then(async () => {
    let request = {};
    try {
      request = JSON.parse(line);
      const handler = handlers[request.op];
      if (!handler) throw new Error(`unknown op ${request.op}`);
      reply({ id: request.id, result: await handler(request) });
    } catch (err) {
      reply({ id: request.id, error: String((err && err.message) || err) });
    }
  });
});
"""


class CircomlibBackend:
    """Primitive backend running circomlibjs in a Node.js subprocess.

    The process is started by `build` and stays up until `close`. Calls
    are blocking request/response round trips, so the provers issue them
    from worker threads; a lock keeps replies paired with requests when
    several threads share the registry. Node's stderr goes to a temporary
    file and is reported when the process dies.

    Args:
        node: Node.js executable
        node_path: Extra module search path (``NODE_PATH``) where
            circomlibjs is installed
        cwd: Working directory for the process; `require` also resolves
            from its ``node_modules``
    """

    def __init__(
        self,
        node: str = 'node',
        node_path: Optional[str] = None,
        cwd: Optional[str] = None,
    ):
        self.node = node
        self.node_path = node_path
        self.cwd = cwd
        self._process: Optional[subprocess.Popen] = None
        self._stderr: Optional[IO[str]] = None
        self._lock = threading.Lock()
        self._next_id = 0

    async def build(self, names: Collection[str]) -> PrimitiveRegistry:
        """Start the bridge and build the requested primitives.

        Construction of the primitives is slow (tables and constants are
        generated in Node), so it runs in a worker thread.
        """
        wanted = sorted(set(names))
        await asyncio.to_thread(self._start, wanted)
        return PrimitiveRegistry(
            poseidon_fn=self._poseidon if PRIMITIVE_POSEIDON in wanted else None,
            pedersen_fn=self._pedersen if PRIMITIVE_PEDERSEN in wanted else None,
            mimc_sponge_fn=self._mimc_sponge if PRIMITIVE_MIMC_SPONGE in wanted else None,
        )

    def close(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        if process.stdin:
            try:
                process.stdin.close()
            except BrokenPipeError:
                # Node already exited; unsent requests are moot
                pass
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if process.stdout:
            process.stdout.close()
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def _start(self, names: List[str]) -> None:
        if self._process is not None:
            self.close()
        executable = shutil.which(self.node)
        if executable is None:
            raise PrimitiveBackendError(f"Node.js executable not found: {self.node}")

        env = dict(os.environ)
        if self.node_path:
            env['NODE_PATH'] = self.node_path

        self._stderr = tempfile.TemporaryFile(mode='w+')
        self._process = subprocess.Popen(
            [executable, '-e', _BRIDGE_SOURCE],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=self._stderr,
            text=True,
            cwd=self.cwd,
            env=env,
        )
        try:
            self._request('init', primitives=names)
        except PrimitiveBackendError:
            self.close()
            raise
        logger.info("Built circomlib primitives: %s", ', '.join(names))

    def _request(self, op: str, **params: Any) -> Any:
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                raise PrimitiveBackendError(self._describe_exit("Primitive bridge is not running"))

            self._next_id += 1
            request_id = self._next_id
            try:
                process.stdin.write(json.dumps({'id': request_id, 'op': op, **params}) + '\n')
                process.stdin.flush()
                line = process.stdout.readline()
            except OSError as exc:
                raise PrimitiveBackendError(
                    self._describe_exit(f"Primitive bridge I/O failed: {exc}")
                ) from exc

            if not line:
                raise PrimitiveBackendError(self._describe_exit("Primitive bridge exited"))

        try:
            reply = json.loads(line)
        except ValueError as exc:
            raise PrimitiveBackendError(f"Unreadable bridge reply: {line!r}") from exc
        if reply.get('id') != request_id:
            raise PrimitiveBackendError(
                f"Primitive bridge replied to {reply.get('id')}, expected {request_id}"
            )
        if 'error' in reply:
            raise PrimitiveBackendError(f"{op} failed: {reply['error']}")
        return reply.get('result')

    def _describe_exit(self, message: str) -> str:
        process = self._process
        if process is None:
            return message
        try:
            process.wait(timeout=1)
        except subprocess.TimeoutExpired:
            return message
        stderr = ''
        if self._stderr is not None:
            self._stderr.seek(0)
            stderr = self._stderr.read()
        return f"{message} (exit code {process.returncode}): {stderr.strip()}"

    def _poseidon(self, inputs: Sequence[int]) -> int:
        return int(self._request(PRIMITIVE_POSEIDON, inputs=[str(value) for value in inputs]))

    def _pedersen(self, preimage: bytes) -> int:
        return int(self._request(PRIMITIVE_PEDERSEN, preimage=preimage.hex()))

    def _mimc_sponge(self, pairs: Sequence[Tuple[int, int]]) -> List[int]:
        if not pairs:
            return []
        result = self._request(
            PRIMITIVE_MIMC_SPONGE,
            pairs=[[str(left), str(right)] for left, right in pairs],
        )
        return [int(value) for value in result]


async def build_registry(backend: PrimitiveBackend, use_credit_note_pool: bool) -> PrimitiveRegistry:
    """Build exactly the primitives the enabled provers need."""
    return await backend.build(required_primitives(use_credit_note_pool))
