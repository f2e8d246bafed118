"""
Dask-based execution helpers

This module hides the details of starting a local Dask cluster
and running the per-file electron selection on it.
"""

from dask.distributed import Client, LocalCluster
from dask import delayed


def create_local_client(n_workers=4, threads_per_worker=1):
    """
    Create a local Dask client with a LocalCluster.

    Parameters
    ----------
    n_workers : int
        Number of workers to start.
    threads_per_worker : int
        Number of threads per worker. Each task builds its own
        selector, so workers share no cutflow state.

    Returns
    -------
    dask.distributed.Client
        Connected Dask client.
    """
    cluster = LocalCluster(
        n_workers=n_workers,
        threads_per_worker=threads_per_worker,
        processes=False,  # threads-only, safe in WSL
    )
    return Client(cluster)


def map_files(filenames, process_function, job):
    """
    Wrap a per-file selection function into Dask delayed tasks.

    Parameters
    ----------
    filenames : list of str
        ROOT file paths to process.
    process_function : callable
        ``process_function(filename, job)`` returning
        ``(cutflow, cutflow_weighted, info)`` or None for a failed file.
    job : dict
        Job configuration passed to every task.

    Returns
    -------
    list of delayed objects, one per file.
    """
    return [delayed(process_function)(filename, job) for filename in filenames]


def gather_files(client, tasks):
    """
    Compute the per-file tasks and keep the successful results.

    Parameters
    ----------
    client : dask.distributed.Client
        Active Dask client.
    tasks : list
        Delayed per-file tasks from ``map_files``.

    Returns
    -------
    list
        Results of the files that did not fail.
    """
    futures = client.compute(tasks)
    results = client.gather(futures)
    return [result for result in results if result is not None]
