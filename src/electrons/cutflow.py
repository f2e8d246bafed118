"""
Cutflow bookkeeping for the electron selection.

Counts are accumulated in a plain dataclass while events are processed
and written once, at the end of the job, into the ``cutflow`` and
``cutflow_weighted`` histograms under the selector's name.
"""

from dataclasses import dataclass

import hist
from hist import Hist


@dataclass
class Cutflow:
    """Running counts of one selector (one worker)."""

    n_events: int = 0
    n_objects: int = 0
    n_objects_pass: int = 0
    n_events_pass: int = 0
    weighted_events_pass: float = 0.0

    def record(self, n_objects, n_pass, event_pass, weight):
        """
        Add the outcome of one selection pass.

        Parameters
        ----------
        n_objects : int
            Electrons evaluated.
        n_pass : int
            Electrons passing the cuts.
        event_pass : bool
            Event-level decision of the pass.
        weight : float
            Event weight, summed for passing events.
        """
        self.n_objects += n_objects
        self.n_objects_pass += n_pass
        if event_pass:
            self.n_events_pass += 1
            self.weighted_events_pass += weight

    def __add__(self, other):
        return Cutflow(
            n_events=self.n_events + other.n_events,
            n_objects=self.n_objects + other.n_objects,
            n_objects_pass=self.n_objects_pass + other.n_objects_pass,
            n_events_pass=self.n_events_pass + other.n_events_pass,
            weighted_events_pass=self.weighted_events_pass + other.weighted_events_pass,
        )

    def flush(self, cutflow_hist, cutflow_weighted_hist, name):
        """
        Write the passed-event counts into the bin labelled ``name``.

        Either histogram may be None, in which case it is skipped.

        Returns
        -------
        tuple
            (raw, weighted) passed-event counts.
        """
        raw, weighted = self.n_events_pass, self.weighted_events_pass
        for h, value in ((cutflow_hist, raw), (cutflow_weighted_hist, weighted)):
            if h is None:
                continue
            if name not in list(h.axes[0]):
                h.fill([name], weight=0.0)
            h.view()[h.axes[0].index(name)] = value
        return raw, weighted


def book_cutflow(stages):
    """
    Create the raw and weighted cutflow histograms.

    Parameters
    ----------
    stages : list of str
        Stage names to pre-book, in cutflow order.

    Returns
    -------
    tuple of hist.Hist
        (cutflow, cutflow_weighted)
    """
    def make(label):
        axis = hist.axis.StrCategory(
            list(stages), growth=True, name="stage", label="Selection stage"
        )
        return Hist(axis, label=label)

    return make("Events"), make("Weighted events")
