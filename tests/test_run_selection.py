import sys

import pytest
ak = pytest.importorskip("awkward")
pytest.importorskip("hist")
pytest.importorskip("matplotlib")
pytest.importorskip("uproot")
from hist import Hist
from src import run_selection


def _arrays():
    # Three events: two good electrons, one photon-like, none
    return ak.Array(
        {
            "Electrons_pt": [[30000.0, 40000.0], [35000.0], []],
            "Electrons_eta": [[0.1, -0.3], [0.2], []],
            "Electrons_author": [[1, 1], [4], []],
            "Electrons_OQ": [[0, 0], [0], []],
            "Electrons_trk_d0": [[0.01, 0.01], [0.01], []],
            "Electrons_trk_z0": [[0.1, 0.1], [0.1], []],
            "Electrons_trk_vz": [[0.0, 0.0], [0.0], []],
            "Electrons_trk_theta": [[1.0, 1.0], [1.0], []],
            "Electrons_trk_d0_var": [[1e-4, 1e-4], [1e-4], []],
            "PV_z": [0.0, 0.0, 0.0],
            "mcEventWeight": [2.0, 1.0, 1.0],
        }
    )


def _job(tmp_path, options="InputContainer: Electrons\nPassMin: 1\n"):
    path = tmp_path / "selector.yaml"
    path.write_text(options)
    return {
        "data_dir": str(tmp_path),
        "file_pattern": "*.root",
        "output_dir": str(tmp_path / "out"),
        "selector": {"name": "ElectronSelector", "config": str(path)},
    }


def test_parse_args_defaults(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prog"])
    args = run_selection.parse_args()
    assert args.config == "config/job.yaml"
    assert args.n_workers is None
    assert args.executor == "local"


def test_parse_args_custom(monkeypatch):
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--config", "myjob.yaml", "--n-workers", "4", "--executor", "dask"],
    )
    args = run_selection.parse_args()
    assert args.config == "myjob.yaml"
    assert args.n_workers == 4
    assert args.executor == "dask"


def test_process_file_runs_selector_over_all_events(monkeypatch, tmp_path):
    monkeypatch.setattr(run_selection, "load_events", lambda _filename: _arrays())

    h, h_w, info = run_selection.process_file("dummy.root", _job(tmp_path))

    assert isinstance(h, Hist) and isinstance(h_w, Hist)
    assert list(h.axes[0]) == ["ElectronSelector"]
    assert h.values()[0] == 1
    assert h_w.values()[0] == pytest.approx(2.0)
    assert info == {
        "filename": "dummy.root",
        "n_events": 3,
        "n_events_pass": 1,
        "weighted_events_pass": 2.0,
        "n_objects": 3,
        "n_objects_pass": 2,
    }


def test_process_file_with_variant_list(monkeypatch, tmp_path):
    arrays = ak.with_field(_arrays(), [[45000.0], [50000.0], [60000.0]], "ElectronsSYS_pt")
    monkeypatch.setattr(run_selection, "load_events", lambda _filename: arrays)
    job = _job(
        tmp_path,
        "InputContainer: Electrons\nInputAlgo: Calibrator_Syst\nPassMin: 1\n",
    )

    _, _, info = run_selection.process_file("dummy.root", job)

    # The shifted collection has no tracks, so only the nominal counts
    assert info["n_events_pass"] == 1
    assert info["n_objects"] == 3


def test_safe_process_file_reports_bad_configuration(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(run_selection, "load_events", lambda _filename: _arrays())
    job = _job(tmp_path, "InputContainer: ''\n")

    assert run_selection.safe_process_file("dummy.root", job) is None
    assert "dummy.root" in capsys.readouterr().out


def test_merge_results_adds_files(monkeypatch, tmp_path):
    monkeypatch.setattr(run_selection, "load_events", lambda _filename: _arrays())
    job = _job(tmp_path)
    results = [run_selection.process_file(name, job) for name in ("a.root", "b.root")]

    h, h_w, totals = run_selection.merge_results(results)

    assert h.values()[0] == 2
    assert h_w.values()[0] == pytest.approx(4.0)
    assert totals["n_events"] == 6
    assert totals["n_objects_pass"] == 4


def test_main_writes_cutflow_outputs(monkeypatch, tmp_path):
    job = _job(tmp_path)
    job["analysis"] = {"make_plots": True}
    (tmp_path / "a.root").write_bytes(b"")
    (tmp_path / "b.root").write_bytes(b"")

    monkeypatch.setattr(run_selection, "load_events", lambda _filename: _arrays())
    monkeypatch.setattr(run_selection, "load_config", lambda _path: job)
    monkeypatch.setattr(sys, "argv", ["prog"])

    run_selection.main()

    out = tmp_path / "out"
    assert (out / "cutflow_counts.npy").exists()
    assert (out / "cutflow_labels.npy").exists()
    assert (out / "cutflow.png").exists()


def _run_main_with_workers(monkeypatch, tmp_path, argv, job_workers):
    job = _job(tmp_path)
    job["analysis"] = {"make_plots": False}
    if job_workers is not None:
        job["n_workers"] = job_workers
    (tmp_path / "a.root").write_bytes(b"")

    seen = {}

    def fake_run_local(files, job, n_workers):
        seen["n_workers"] = n_workers
        return [run_selection.process_file(fname, job) for fname in files]

    monkeypatch.setattr(run_selection, "load_events", lambda _filename: _arrays())
    monkeypatch.setattr(run_selection, "load_config", lambda _path: job)
    monkeypatch.setattr(run_selection, "run_local", fake_run_local)
    monkeypatch.setattr(run_selection, "setup_logging", lambda: seen.setdefault("logging", True))
    monkeypatch.setattr(run_selection.multiprocessing, "cpu_count", lambda: 8)
    monkeypatch.setattr(sys, "argv", ["prog"] + argv)

    run_selection.main()
    return seen


def test_main_command_line_workers_override_job_file(monkeypatch, tmp_path):
    seen = _run_main_with_workers(monkeypatch, tmp_path, ["--n-workers", "4"], job_workers=1)
    assert seen["n_workers"] == 4
    assert seen["logging"]


def test_main_uses_job_file_workers_without_flag(monkeypatch, tmp_path):
    seen = _run_main_with_workers(monkeypatch, tmp_path, [], job_workers=3)
    assert seen["n_workers"] == 3


def test_main_defaults_to_one_worker(monkeypatch, tmp_path):
    seen = _run_main_with_workers(monkeypatch, tmp_path, [], job_workers=None)
    assert seen["n_workers"] == 1
