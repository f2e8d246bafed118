"""
Event data consumed by the electron selection.

These are thin containers: the selection only reads them, apart from
the ``pass_sel`` marker it writes on each electron and the outputs it
records in the event store.
"""

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

from src.electrons.errors import MissingInputError


# Event-level decoration holding the generator weight
WEIGHT_KEY = "mcEventWeight"


class Author(IntFlag):
    """Reconstruction algorithm(s) that produced an egamma object."""

    UNKNOWN = 0x0
    ELECTRON = 0x1
    PHOTON = 0x4
    FWD_ELECTRON = 0x8
    AMBIGUOUS = 0x10


class PassSel(IntEnum):
    """Selection marker written on each electron."""

    NOT_EVALUATED = -1
    FAIL = 0
    PASS = 1


class VertexType(IntEnum):
    """Vertex type codes of the reconstructed vertex collection."""

    NOT_SPECIFIED = -99
    NO_VERTEX = 0
    PRIMARY = 1
    SECONDARY = 2
    PILEUP = 3
    CONVERSION = 4
    V0 = 5
    KINK = 6

    @classmethod
    def _missing_(cls, value):
        # Only PRIMARY is ever compared, other codes need not be known
        return cls.NOT_SPECIFIED


@dataclass
class Track:
    """Track parameters used by the impact-parameter cuts (mm, rad)."""

    d0: float
    z0: float
    vz: float
    theta: float
    d0_variance: float


@dataclass(eq=False)
class Electron:
    """
    One electron candidate.

    Electrons compare by identity, so a selected view holds the very
    objects of the input collection.
    """

    pt: float
    eta: float
    phi: float = 0.0
    author: int = Author.ELECTRON
    oq: int = 0
    track: Track = None
    isolation: dict = field(default_factory=dict)
    decorations: dict = field(default_factory=dict)
    pass_sel: PassSel = None

    def has_author(self, flags):
        return bool(int(self.author) & int(flags))


@dataclass
class Vertex:
    z: float
    vertex_type: VertexType = VertexType.PRIMARY


def primary_vertex(vertices):
    """
    Return the first primary vertex of the collection.

    Raises
    ------
    MissingInputError
        If the collection holds no primary vertex.
    """
    for vertex in vertices or []:
        if vertex.vertex_type == VertexType.PRIMARY:
            return vertex
    raise MissingInputError("PrimaryVertices", what="primary vertex in")


@dataclass(eq=False)
class Event:
    """
    One event as seen by the selection.

    ``store`` holds the named collections: input electron containers,
    the variant-name list of the upstream algorithm, and everything the
    selection publishes. ``info`` holds event-level decorations.
    """

    store: dict = field(default_factory=dict)
    info: dict = field(default_factory=dict)
    vertices: list = None
    skip: bool = False

    def retrieve(self, key):
        try:
            return self.store[key]
        except KeyError:
            raise MissingInputError(key, what="collection") from None

    def record(self, key, value):
        self.store[key] = value

    def weight(self):
        if WEIGHT_KEY not in self.info:
            raise MissingInputError(WEIGHT_KEY, what="event decoration")
        return float(self.info[WEIGHT_KEY])

    def primary_vertex(self):
        if self.vertices is None:
            raise MissingInputError("PrimaryVertices", what="collection")
        return primary_vertex(self.vertices)
