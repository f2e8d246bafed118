"""
Main entry point for running the electron selection on flat ntuples.

Reads ROOT files, runs one ElectronSelector per file over every event,
and merges the per-file cutflow histograms into the job cutflow.

Supports serial execution, local multi-process parallelism via
ProcessPoolExecutor, and a local Dask cluster.
"""

import argparse
import glob
import os
import time
import multiprocessing
from concurrent.futures import ProcessPoolExecutor, as_completed

import yaml
import numpy as np
import matplotlib.pyplot as plt
from hist import Hist

from src.electrons.cutflow import book_cutflow
from src.electrons.errors import SelectionError
from src.electrons.io import build_events, load_events
from src.electrons.logger import setup_logging
from src.electrons.selector import ElectronSelector


# Argument parsing and config loading
def parse_args():
    parser = argparse.ArgumentParser(
        description="Electron object selection over ROOT ntuples."
    )
    parser.add_argument(
        "--config",
        default="config/job.yaml",
        help="Path to the job YAML configuration file.",
    )
    parser.add_argument(
        "--n-workers",
        type=int,
        default=None,
        help="Number of worker processes for parallel file processing "
        "(overrides n_workers of the job file; default 1).",
    )
    parser.add_argument(
        "--executor",
        choices=["local", "dask"],
        default="local",
        help="Run workers with a process pool or a local Dask cluster.",
    )
    return parser.parse_args()


def load_config(path):
    with open(path) as f:
        return yaml.safe_load(f)


# Per-file selection
def process_file(filename, job):
    """
    Run the electron selection over every event of one file.

    Each call owns its selector and cutflow, so files can be processed
    by independent workers and merged afterwards.

    Returns
    -------
    tuple
        (cutflow hist, weighted cutflow hist, info dict)
    """
    name = job["selector"]["name"]
    selector = ElectronSelector(name, job["selector"]["config"])

    h_cutflow, h_cutflow_w = book_cutflow([name])
    selector.initialize(h_cutflow, h_cutflow_w)
    config = selector.config

    arrays = load_events(filename)

    if config.input_algo:
        events = build_events(arrays, config.input_container, variant_key=config.input_algo)
    else:
        events = build_events(arrays, config.input_container, variants=[""])

    for event in events:
        selector.execute(event)

    cutflow = selector.cutflow
    selector.finalize()

    info = {
        "filename": filename,
        "n_events": cutflow.n_events,
        "n_events_pass": cutflow.n_events_pass,
        "weighted_events_pass": cutflow.weighted_events_pass,
        "n_objects": cutflow.n_objects,
        "n_objects_pass": cutflow.n_objects_pass,
    }
    return h_cutflow, h_cutflow_w, info


def safe_process_file(fname, job):
    """
    Wrapper so that a bad file doesn't kill the whole job.
    """
    try:
        return process_file(fname, job)
    except (SelectionError, OSError, RuntimeError) as e:
        print(f"[WARN] Error in file {fname}: {e}")
        return None


def run_local(files, job, n_workers):
    """Process files serially (one worker) or with a process pool."""
    results = []

    # Serial path for N=1: avoids multiprocessing overhead
    if n_workers == 1:
        for i, fname in enumerate(files, start=1):
            out = safe_process_file(fname, job)
            if out is not None:
                results.append(out)
            print(f"[{i}/{len(files)}] Completed {fname}")
        return results

    with ProcessPoolExecutor(max_workers=n_workers) as pool:
        future_to_file = {
            pool.submit(safe_process_file, fname, job): fname for fname in files
        }
        for i, future in enumerate(as_completed(future_to_file), start=1):
            fname = future_to_file[future]
            try:
                out = future.result()
            except Exception as e:
                print(f"[ERROR] {fname}: {e}")
                continue
            if out is not None:
                results.append(out)
            print(f"[{i}/{len(files)}] Completed {fname}")

    return results


def run_dask(files, job, n_workers):
    """Process files on a local Dask cluster."""
    from src.distributed.executor import create_local_client, gather_files, map_files

    client = create_local_client(n_workers=n_workers)
    try:
        tasks = map_files(files, safe_process_file, job)
        return gather_files(client, tasks)
    finally:
        client.close()


def merge_results(results):
    """Add up the per-file cutflow histograms and counters."""
    hists, hists_w, infos = zip(*results)

    hists = [h for h in hists if isinstance(h, Hist)]
    hists_w = [h for h in hists_w if isinstance(h, Hist)]
    if not hists or not hists_w:
        raise RuntimeError("No cutflow histograms were produced!")

    total = hists[0].copy()
    for h in hists[1:]:
        total += h

    total_w = hists_w[0].copy()
    for h in hists_w[1:]:
        total_w += h

    totals = {
        key: sum(info[key] for info in infos)
        for key in ("n_events", "n_events_pass", "weighted_events_pass",
                    "n_objects", "n_objects_pass")
    }
    return total, total_w, totals


def plot_cutflow(h_cutflow, h_cutflow_w, outdir):
    labels = list(h_cutflow.axes[0])
    x = np.arange(len(labels))

    fig, ax = plt.subplots()
    ax.bar(x - 0.2, h_cutflow.values(), width=0.4, label="Events")
    ax.bar(x + 0.2, h_cutflow_w.values(), width=0.4, label="Weighted events")
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=30, ha="right")
    ax.set_ylabel("Events passing")
    ax.set_title("Cutflow")
    ax.legend(loc="best", frameon=False)
    fig.tight_layout()
    fig.savefig(os.path.join(outdir, "cutflow.png"))
    plt.close(fig)


def main():
    setup_logging()
    args = parse_args()
    job = load_config(args.config)

    pattern = os.path.join(job["data_dir"], job["file_pattern"])
    files = sorted(glob.glob(pattern))

    if not files:
        raise RuntimeError(f"No input files found for pattern {pattern}")

    print(f"Found {len(files)} input files.")

    make_plots = job.get("analysis", {}).get("make_plots", True)

    # Decide how many workers to use
    n_workers = args.n_workers
    if n_workers is None:
        n_workers = job.get("n_workers", 1)
    max_procs = multiprocessing.cpu_count() or 1
    if n_workers > max_procs:
        print(
            f"[INFO] Requested {n_workers} workers but only {max_procs} cores available; "
            f"using {max_procs}."
        )
        n_workers = max_procs

    print(f"Using {n_workers} worker(s) with the {args.executor} executor.")

    start_time = time.perf_counter()
    if args.executor == "dask":
        results = run_dask(files, job, n_workers)
    else:
        results = run_local(files, job, n_workers)
    wall_time = time.perf_counter() - start_time

    if not results:
        raise RuntimeError("No successful per-file results; nothing to merge.")

    h_cutflow, h_cutflow_w, totals = merge_results(results)

    outdir = job["output_dir"]
    os.makedirs(outdir, exist_ok=True)

    np.save(os.path.join(outdir, "cutflow_labels.npy"), np.array(list(h_cutflow.axes[0])))
    np.save(os.path.join(outdir, "cutflow_counts.npy"), h_cutflow.values())
    np.save(os.path.join(outdir, "cutflow_weighted_counts.npy"), h_cutflow_w.values())

    if make_plots:
        plot_cutflow(h_cutflow, h_cutflow_w, outdir)

    # Final summary
    print(f"Processed {len(results)} files.")
    print(f"Events seen: {totals['n_events']}")
    print(
        f"Events passing: {totals['n_events_pass']} "
        f"(weighted {totals['weighted_events_pass']:.3f})"
    )
    print(f"Electrons passing: {totals['n_objects_pass']}/{totals['n_objects']}")
    print(f"Total wall time: {wall_time:.2f} s")
    if wall_time > 0:
        rate = totals["n_events"] / wall_time
        print(f"Average processing rate: {rate:.1f} events/s")
    print(f"Saved outputs to {outdir}")


if __name__ == "__main__":
    main()
