"""
Per-electron cuts.

``pass_cuts`` applies the cuts in a fixed order and stops at the first
failure. Kinematic bounds are off when set to the sentinel 1e8, the
structural and identification cuts have their own switches, and the
impact-parameter cuts are always applied.
"""

import numpy as np

from src.electrons.config import SENTINEL
from src.electrons.logger import logger
from src.electrons.objects import Author


# Object-quality bits that flag a bad cluster
BAD_OQ_MASK = 1446

# Barrel/end-cap transition region in |eta|
CRACK_ETA_LOW = 1.37
CRACK_ETA_HIGH = 1.52


def d0_significance(track):
    """|d0| / sigma(d0); infinite or NaN for a zero variance."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.abs(track.d0) / np.sqrt(np.float64(track.d0_variance))


def z0_sin_theta(track, vertex):
    """Longitudinal impact parameter with respect to the primary vertex."""
    return (track.z0 + track.vz - vertex.z) * np.sin(track.theta)


def _reject(config, cut):
    if config.debug:
        logger.debug(f"Electron failed {cut} cut.")
    return False


def pass_cuts(electron, primary_vertex, config, tools):
    """
    Decide whether one electron passes the selection.

    Parameters
    ----------
    electron : Electron
        Candidate to test. It is not modified.
    primary_vertex : Vertex
        Event primary vertex, reference for z0*sin(theta).
    config : SelectorConfig
        Cut switches and thresholds.
    tools : SelectionTools
        Initialized likelihood, cut-based and isolation tools.

    Returns
    -------
    bool
        True if every enabled cut passes.
    """
    pt = electron.pt
    abs_eta = abs(electron.eta)

    if config.do_author_cut:
        if not electron.has_author(Author.ELECTRON | Author.AMBIGUOUS):
            return _reject(config, "author")

    if config.do_oq_cut:
        if int(electron.oq) & BAD_OQ_MASK != 0:
            return _reject(config, "object quality")

    if config.pt_max != SENTINEL and pt > config.pt_max:
        return _reject(config, "pT max")

    if config.pt_min != SENTINEL and pt < config.pt_min:
        return _reject(config, "pT min")

    if config.eta_max != SENTINEL and abs_eta > config.eta_max:
        return _reject(config, "|eta| max")

    if config.veto_crack:
        if CRACK_ETA_LOW < abs_eta < CRACK_ETA_HIGH:
            return _reject(config, "|eta| crack veto")

    track = electron.track
    if track is None:
        return _reject(config, "d0 (no track)")

    # Signed d0, as in the original selection
    if not track.d0 < config.d0_max:
        return _reject(config, "d0")

    if not d0_significance(track) < config.d0sig_max:
        return _reject(config, "d0 significance")

    if not abs(z0_sin_theta(track, primary_vertex)) < config.z0sintheta_max:
        return _reject(config, "z0*sin(theta)")

    if config.do_lh_pid_cut and not tools.likelihood.accept(electron):
        return _reject(config, "likelihood PID")

    if config.do_cut_based_pid_cut and not tools.cut_based.accept(electron):
        return _reject(config, "cut-based PID")

    if config.do_isolation_cut and not tools.isolation.accept(electron):
        return _reject(config, "isolation")

    return True
