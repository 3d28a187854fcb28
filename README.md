# raycluster

Building blocks for a ray tracer that splits a picture into tiles and
shares them out across a cluster of workers over TCP.

The package provides:

- **Vector math** (`raycluster.vector`): immutable `Vec` and `Point` with
  element-wise arithmetic, `dot`, `cross`, `reflect`, `length`,
  `normalized`, `clamped` and random sampling (`random_double`,
  `Vec.random`, `Vec.random_unit`). `Color` is another name for `Vec`.
- **Geometry** (`raycluster.geometry`): square matrices (`Mat`, with
  `Mat.zeros` and `Mat.from_euler`), rays (`Ray.at`) and rectangles
  (`Rect.at`).
- **Command-line parsing** (`raycluster.cli`): `Parser`, `Attributes` and
  `Mode`; bad usage raises `InvalidUsage`.
- **Wire protocol**: a big-endian `Serializer`/`Deserializer`
  (`raycluster.serialization`), length-prefixed framing
  (`raycluster.transport`) and the packet types
  (`raycluster.packets`).
- **Cluster coordination**: `Tile`, `Session`/`SessionManager`, `Cluster`,
  `Client` and `Server`.

## Vector math

```python
from raycluster.vector import Vec, Point, dot, cross

a = Vec(1.0, 0.0, 0.0)
b = Vec(0.0, 1.0, 0.0)

print(dot(a, b))            # 0.0
print(cross(a, b))          # Vec(0.0, 0.0, 1.0)
print((a + b).normalized()) # unit vector halfway between a and b

origin = Point(0.0, 0.0, 0.0)
target = Point(1.0, 2.0, 2.0)
print((target - origin).length())  # 3.0
```

Vectors combine with vectors of the same dimension (a mismatch raises
`ValueError`) or with scalars. A scalar on the left acts as if it were on
the right, so `2 - v` equals `v - 2` and `2 / v` equals `v / 2`.

A `Point` may be moved by a `Vec` (giving a `Point`), and two points
subtract to the `Vec` between them; adding two points, or scaling or
dividing a point, raises `TypeError`. `Point.to_vec(p1, p2)` gives the
vector from `p1` to `p2`.

`random_double(low, high)` draws from `[low, high)` using a generator with
a fixed seed, so a run's random sequence is repeatable.

## Geometry

```python
import math
from raycluster.geometry import Mat, Ray
from raycluster.vector import Point, Vec

rotation = Mat.from_euler(math.pi / 2, 0.0, 0.0)  # yaw, pitch, roll in radians
print(rotation * Vec(1.0, 0.0, 0.0))

ray = Ray(Point(0.0, 0.0, 0.0), Vec(0.0, 0.0, 1.0))
print(ray.at(2.0))  # Point(0.0, 0.0, 2.0)
```

`Mat * Mat` and `Mat * Vec` are supported; rows of unequal length raise
`ValueError`.

## Parsing the command line

```python
from raycluster.cli import Parser, InvalidUsage

parser = Parser()
try:
    exit_now = parser.parse(["--mode", "server", "-p", "4242",
                             "--config", "server.yml", "scene.yml"])
except InvalidUsage as error:
    print(f"usage error: {error}")
else:
    print(parser.attributes)
```

Options understood by `Parser.parse`:

| Option | Aliases | Value |
| --- | --- | --- |
| `--mode` | `-m` | `self`, `server` or `client` (default `self`) |
| `--threads` | `--cores`, `-c`, `-t` | 1 to 65535, or `auto` (the CPU count) |
| `--tile-size` | | a positive number, or `auto` |
| `--config` | | server configuration file |
| `-h` | | host; `localhost` becomes `127.0.0.1` |
| `-p` | | port, 1 to 65535 |
| `-d` | `--debug`, `-v`, `--verbose` | debug mode |
| `--no-preview` | | turn the preview off |

Other arguments not starting with `-` are scene file paths. A lone
`--help` prints the usage text and a lone `--about` (or `-a`) a short
description; `parse` then returns `True`. Otherwise it checks the
arguments against the mode and returns `False`: client mode needs a host
and a port and no scene; server mode needs a port, a configuration file,
at least one scene and no host; self mode needs a scene and no host or
port.

## Packets

Every packet starts with a one-byte `PacketType`. Integers are written
big-endian, strings are prefixed with their 32-bit byte length, and pixel
lists with their 32-bit element count, each pixel as three doubles.

| Packet | Type | Fields |
| --- | --- | --- |
| `Ping` | `0x01` | `timestamp` (64-bit) |
| `Pong` | `0x02` | `timestamp` (64-bit); `progress` is not sent |
| `Kiss` | `0x03` | none |
| `Workslave` | `0x04` | `scene_content`, `x`, `y`, `width`, `height` (32-bit) |
| `Cestciao` | `0x05` | none |
| `Finito` | `0x06` | `pixel_buffer` |
| `Nvmstop` | `0x07` | none |

```python
from raycluster.packets import Kiss, packet_from_bytes

raw = Kiss().serialize()
print(raw)                                    # b'\x03'
print(type(packet_from_bytes(raw)).__name__)  # Kiss
```

`packet_from_bytes` raises `EmptyByteBuffer`, `UnknownPacket` or
`UnexpectedRemainingData` when the buffer is not a valid packet, and
`InvalidPacketSize` when it is cut short.

On the wire each packet is cut into chunks of at most 32768 bytes, each
preceded by a two-byte big-endian length; a zero-length header ends the
packet. `encode_frames` and `FrameDecoder` in `raycluster.transport`
implement that framing, and `PacketSocket` sends and receives whole
packets over a socket.

## Running a render server

`Server` reads a YAML configuration file with `serverName`,
`serverDescription`, `maxClients` and `heartbeatFrequency` (seconds), and
YAML scene files that hold `camera.resolution.width`,
`camera.resolution.height` and `outputDirectory`.

```python
from raycluster.server import Server, ServerProperties

class Image:
    def __init__(self, width, height):
        self.pixels = []

    def __iadd__(self, pixels):
        self.pixels.extend(pixels)
        return self

    def save(self, path):
        ...

properties = ServerProperties(
    port=4242,
    configuration_file_path="server.yml",
    scene_filepaths=["scene.yml"],
)
with Server(properties, Image) as server:
    server.start()
```

The server waits until `maxClients` workers are connected, cuts the image
into square tiles of `tile_size` pixels (1024 by default, or when given as
`-1`), sends each idle worker a `Workslave` packet with the scene text and
its tile, pings workers every heartbeat to measure latency, and gives the
tile of a worker that disconnects back to the queue. Pixels from `Finito`
packets are divided by 255 and added to the image; when every tile is done
the image is saved as a timestamp-named file in `outputDirectory`, and the
next scene begins. A scene whose resolution is missing, or for which the
optional `scene_validator` raises or returns `False`, is skipped.
`Server.stop` sends `Kiss` to every worker and closes the sockets.

On the worker side, `Client(host, port)` connects to a server;
`Client.run` sends the packets queued with `push_packet` and queues the
ones received, which the caller takes with `pop_packet`.

## What this package does not do

- It does not trace rays: there are no shapes, materials, lights or camera,
  and nothing that turns a scene file into pixels.
- It has no image format. `Server` and `Cluster` are given an
  `image_factory` that builds the object collecting the pixels and saving
  the result.
- The worker side does not act on packets by itself: `Client` only sends
  and queues them. Rendering a `Workslave` tile and answering with `Pong`
  or `Finito` is left to the caller.
- There is no command to run; `Parser` gathers the options for a program
  built on top of the package.

## Testing

The test suite uses pytest; the `test` extra lists what it needs.