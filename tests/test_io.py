import pytest
ak = pytest.importorskip("awkward")
pytest.importorskip("uproot")
from src.electrons import io
from src.electrons.objects import VertexType


class DummyTree:
    classname = "TTree"

    def __init__(self, arrays=None):
        self._arrays = arrays
        self.requested = "unset"

    def arrays(self, branches, library):
        self.requested = branches
        return self._arrays


class DummyFileMini:
    # Mimic a ROOT file that has a 'mini' TTree

    def __init__(self, tree=None):
        self._store = {"mini": tree or DummyTree()}
        self.file_path = "dummy.root"

    def keys(self):
        return list(self._store.keys())

    def __getitem__(self, key):
        return self._store[key]

    def classnames(self):
        return {}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class DummyFileUnique:
    # Mimic a ROOT file with exactly one TTree next to a histogram

    def __init__(self):
        self._store = {"nominal": DummyTree(), "cutflow": object()}
        self.file_path = "unique.root"

    def keys(self):
        return list(self._store.keys())

    def __getitem__(self, key):
        return self._store[key]

    def classnames(self):
        return {"nominal": "TTree", "cutflow": "TH1D"}


class DummyDir:
    def __init__(self, children):
        self._children = children

    def keys(self):
        return list(self._children.keys())

    def __getitem__(self, key):
        return self._children[key]


class DummyFileNested:
    # Mimic a ROOT file where the TTree lives inside a directory

    def __init__(self, with_tree=True):
        tree = DummyTree()
        self.file_path = "nested.root"
        children = {"subtree": tree} if with_tree else {}
        self._store = {"dir1": DummyDir(children)}
        if with_tree:
            self._store["dir1/subtree"] = tree

    def keys(self):
        # Only top-level keys, like uproot
        return [k for k in self._store.keys() if "/" not in k]

    def __getitem__(self, key):
        return self._store[key]

    def classnames(self):
        return {}


def _electron_arrays():
    return ak.Array(
        {
            "Electrons_pt": [[30000.0, 10000.0], []],
            "Electrons_eta": [[0.1, -1.4], []],
            "Electrons_phi": [[0.0, 1.0], []],
            "Electrons_author": [[1, 16], []],
            "Electrons_OQ": [[0, 2], []],
            "Electrons_trk_d0": [[0.01, -0.02], []],
            "Electrons_trk_z0": [[0.1, 0.2], []],
            "Electrons_trk_vz": [[0.0, 0.0], []],
            "Electrons_trk_theta": [[1.0, 0.5], []],
            "Electrons_trk_d0_var": [[1e-4, 4e-4], []],
            "Electrons_iso_ptcone20": [[100.0, 200.0], []],
            "Electrons_dec_DFCommonElectronsLHLoose": [[True, False], []],
            "ElectronsEG_SCALE__1up_pt": [[31000.0], [5000.0]],
            "PV_z": [[0.5, 1.0], [0.0]],
            "PV_type": [[1, 3], [1]],
            "mcEventWeight": [1.5, 0.5],
        }
    )


def test_find_tree_prefers_mini_key():
    f = DummyFileMini()
    tree = io._find_tree(f)
    assert isinstance(tree, DummyTree)


def test_find_tree_unique_ttree_via_classnames():
    f = DummyFileUnique()
    assert io._find_tree(f) is f["nominal"]


def test_find_tree_nested_directory_search():
    f = DummyFileNested()
    tree = io._find_tree(f)
    assert isinstance(tree, DummyTree)


def test_find_tree_raises_without_tree():
    with pytest.raises(RuntimeError, match="nested.root"):
        io._find_tree(DummyFileNested(with_tree=False))


def test_load_events_reads_all_branches_by_default(monkeypatch):
    arrays = _electron_arrays()
    tree = DummyTree(arrays)
    monkeypatch.setattr(io.uproot, "open", lambda filename: DummyFileMini(tree))

    assert io.load_events("dummy.root") is arrays
    assert tree.requested is None

    io.load_events("dummy.root", branches=["Electrons_pt"])
    assert tree.requested == ["Electrons_pt"]


def test_discover_variants_puts_nominal_first():
    fields = [
        "Electrons_pt",
        "Electrons_eta",
        "ElectronsEG_SCALE__1up_pt",
        "ElectronsEG_RES__1down_pt",
        "Electrons_iso_ptcone20",
        "Electrons_dec_passOR_pt",
        "Muons_pt",
    ]
    assert io.discover_variants(fields, "Electrons") == ["", "EG_RES__1down", "EG_SCALE__1up"]


def test_build_events_makes_electrons_and_vertices():
    events = list(io.build_events(_electron_arrays(), "Electrons", variant_key="Calibrator_Syst"))

    assert len(events) == 2
    first, second = events

    electrons = first.retrieve("Electrons")
    assert len(electrons) == 2
    assert electrons[1].eta == pytest.approx(-1.4)
    assert electrons[1].author == 16
    assert electrons[1].oq == 2
    assert electrons[1].track.d0 == pytest.approx(-0.02)
    assert electrons[1].track.d0_variance == pytest.approx(4e-4)
    assert electrons[0].isolation == {"ptcone20": 100.0}
    assert electrons[0].decorations == {"DFCommonElectronsLHLoose": True}

    assert first.retrieve("Calibrator_Syst") == ["", "EG_SCALE__1up"]
    assert first.weight() == pytest.approx(1.5)
    assert [v.vertex_type for v in first.vertices] == [VertexType.PRIMARY, VertexType.PILEUP]
    assert first.primary_vertex().z == pytest.approx(0.5)

    # Variant with only pT: defaults elsewhere and no track
    shifted = second.retrieve("ElectronsEG_SCALE__1up")
    assert shifted[0].pt == pytest.approx(5000.0)
    assert shifted[0].track is None
    assert second.retrieve("Electrons") == []
    assert second.weight() == pytest.approx(0.5)


def test_build_events_with_explicit_variants_and_no_weight():
    arrays = ak.Array({"Electrons_pt": [[30000.0]], "PV_z": [0.0]})

    (event,) = io.build_events(arrays, "Electrons", variants=[""])

    assert list(event.store) == ["Electrons"]
    assert event.primary_vertex().z == 0.0
    assert "mcEventWeight" not in event.info


def test_build_events_accepts_every_vertex_type():
    arrays = ak.Array(
        {
            "Electrons_pt": [[30000.0]],
            "PV_z": [[3.0, 0.0, 1.0, 2.0]],
            "PV_type": [[4, 1, -99, 42]],
        }
    )

    (event,) = io.build_events(arrays, "Electrons", variants=[""])

    assert [v.vertex_type for v in event.vertices] == [
        VertexType.CONVERSION,
        VertexType.PRIMARY,
        VertexType.NOT_SPECIFIED,
        VertexType.NOT_SPECIFIED,
    ]
    assert event.primary_vertex().z == 0.0
