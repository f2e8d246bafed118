"""
I/O utilities for feeding flat electron ntuples to the selection.

Events are read from ROOT files with uproot into Awkward Arrays and
turned into ``Event`` objects, one per entry. Branches of an electron
container named ``Electrons`` and a systematic variant ``EG_SCALE__1up``
are expected as ``ElectronsEG_SCALE__1up_pt``, ``..._eta`` and so on;
the nominal collection has no suffix (``Electrons_pt``).
"""

import awkward as ak
import uproot

from src.electrons.objects import WEIGHT_KEY, Electron, Event, Track, Vertex, VertexType


TRACK_FIELDS = {
    "d0": "trk_d0",
    "z0": "trk_z0",
    "vz": "trk_vz",
    "theta": "trk_theta",
    "d0_variance": "trk_d0_var",
}

ISO_TAG = "_iso_"
DECOR_TAG = "_dec_"


def _find_tree(file):
    """
    Detect the event TTree inside the ROOT file.

    Logic:
    1. If 'mini' exists, use it.
    2. Otherwise, use the only TTree at the top level.
    3. Otherwise, search for a TTree one directory down.
    """
    for name in ("mini", "mini;1"):
        if name in file.keys():
            return file[name]

    tt_keys = [k for k, v in file.classnames().items() if v == "TTree"]
    if len(tt_keys) == 1:
        return file[tt_keys[0]]

    for key in file.keys():
        directory = file[key]
        if not hasattr(directory, "keys"):
            continue
        for subkey in directory.keys():
            full = f"{key}/{subkey}"
            if getattr(file[full], "classname", None) == "TTree":
                return file[full]

    raise RuntimeError(f"No TTree found in file {file.file_path}")


def load_events(filename, branches=None):
    """
    Load branches of the event tree into an Awkward Array.

    Parameters
    ----------
    filename : str
        ROOT file path.
    branches : list of str, optional
        Branches to read; all of them if None.
    """
    with uproot.open(filename) as f:
        tree = _find_tree(f)
        arrays = tree.arrays(branches, library="ak")

    return arrays


def discover_variants(fields, container):
    """
    List the variant suffixes available for a container.

    A variant exists for every ``<container><variant>_pt`` field. The
    nominal variant (empty string) comes first, the others sorted.
    """
    variants = set()
    for name in fields:
        if not (name.startswith(container) and name.endswith("_pt")):
            continue
        variant = name[len(container):-len("_pt")]
        if any(tag in variant for tag in (ISO_TAG, DECOR_TAG, "_trk")):
            continue
        variants.add(variant)

    return sorted(variants, key=lambda v: (v != "", v))


def _build_electrons(record, prefix):
    """Electrons of one collection of one event record (a dict of lists)."""
    pts = record[f"{prefix}_pt"]
    n = len(pts)

    def column(suffix, default):
        values = record.get(f"{prefix}_{suffix}")
        return values if values is not None else [default] * n

    eta = column("eta", 0.0)
    phi = column("phi", 0.0)
    author = column("author", 1)
    oq = column("OQ", 0)

    has_track = all(f"{prefix}_{branch}" in record for branch in TRACK_FIELDS.values())
    iso_keys = [k for k in record if k.startswith(prefix + ISO_TAG)]
    dec_keys = [k for k in record if k.startswith(prefix + DECOR_TAG)]

    electrons = []
    for i in range(n):
        track = None
        if has_track:
            track = Track(**{
                attr: record[f"{prefix}_{branch}"][i]
                for attr, branch in TRACK_FIELDS.items()
            })
        electrons.append(
            Electron(
                pt=pts[i],
                eta=eta[i],
                phi=phi[i],
                author=int(author[i]),
                oq=int(oq[i]),
                track=track,
                isolation={k[len(prefix + ISO_TAG):]: record[k][i] for k in iso_keys},
                decorations={k[len(prefix + DECOR_TAG):]: record[k][i] for k in dec_keys},
            )
        )
    return electrons


def _build_vertices(record):
    if "PV_z" not in record:
        return None

    zs = record["PV_z"]
    if not isinstance(zs, list):
        return [Vertex(z=zs)]

    types = record.get("PV_type") or [VertexType.PRIMARY] * len(zs)
    return [Vertex(z=z, vertex_type=VertexType(int(t))) for z, t in zip(zs, types)]


def build_events(arrays, container, variant_key=None, variants=None):
    """
    Turn an Awkward Array of flat branches into Events.

    Parameters
    ----------
    arrays : ak.Array
        One record per event, as returned by ``load_events``.
    container : str
        Base name of the electron container.
    variant_key : str, optional
        If given, the list of variants is recorded in each event store
        under this key, as an upstream calibration stage would.
    variants : list of str, optional
        Variants to build; discovered from the fields if None.

    Yields
    ------
    Event
    """
    if variants is None:
        variants = discover_variants(ak.fields(arrays), container)

    for record in ak.to_list(arrays):
        event = Event(vertices=_build_vertices(record))
        if WEIGHT_KEY in record:
            event.info[WEIGHT_KEY] = record[WEIGHT_KEY]

        for variant in variants:
            event.record(container + variant, _build_electrons(record, container + variant))

        if variant_key:
            event.record(variant_key, list(variants))

        yield event
