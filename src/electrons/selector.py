"""
Electron selection stage.

``ElectronSelector`` applies the per-electron cuts to one event at a
time, decorates each electron with its ``pass_sel`` marker, decides
whether the event keeps enough electrons, and repeats the same
selection for every systematic variant of the input collection. Cutflow
counts are taken from the first variant only.
"""

from dataclasses import dataclass

from src.electrons.config import SelectorConfig, load_config
from src.electrons.cutflow import Cutflow
from src.electrons.cuts import pass_cuts
from src.electrons.errors import MissingInputError, SelectionError, ToolInitializationError
from src.electrons.logger import logger, set_debug
from src.electrons.objects import PassSel
from src.electrons.tools import build_tools


@dataclass
class SelectionResult:
    """Outcome of one selection pass over one collection."""

    event_pass: bool
    selected: list
    n_objects: int
    n_pass: int


class ElectronSelector:
    """
    Event-by-event electron selection.

    Parameters
    ----------
    name : str
        Stage name; labels the tools and the cutflow bin.
    config : SelectorConfig, dict or str
        Configuration, option mapping, or path to a YAML file.
    tools : SelectionTools, optional
        Decision tools to use instead of the default ones.
    """

    def __init__(self, name, config, tools=None):
        self.name = name
        self._config_source = config
        self.config = None
        self._tools_source = tools
        self.tools = None
        self.cutflow = Cutflow()
        self._cutflow_hists = (None, None)
        self._initialized = False
        self._finalized = False

    def configure(self):
        """Resolve the configuration into a SelectorConfig."""
        source = self._config_source
        if isinstance(source, SelectorConfig):
            config = source
        elif isinstance(source, dict):
            config = SelectorConfig.from_dict(source)
        else:
            logger.info(f"{self.name}: reading configuration from {source}")
            config = load_config(source)

        self.config = config
        set_debug(config.debug)
        logger.info(f"{self.name}: configuration\n{config.describe()}")
        return config

    def initialize(self, cutflow_hist=None, cutflow_weighted_hist=None):
        """
        Prepare the selector before the first event.

        Parameters
        ----------
        cutflow_hist, cutflow_weighted_hist : hist.Hist, optional
            Histograms receiving the passed-event counts at finalize.
            Ignored unless UseCutFlow is set.
        """
        try:
            self.configure()
        except SelectionError:
            logger.error(f"{self.name}: failed to properly configure. Exiting.")
            raise

        self.cutflow = Cutflow()
        if self.config.use_cutflow:
            self._cutflow_hists = (cutflow_hist, cutflow_weighted_hist)

        self.tools = self._tools_source
        if self.tools is None:
            self.tools = build_tools(self.config, self.name)

        for tool in self.tools:
            try:
                tool.initialize()
            except Exception as err:
                logger.error(f"{self.name}: failed to initialize {tool.name}: {err}")
                raise ToolInitializationError(
                    f"{self.name}: failed to initialize {tool.name}"
                ) from err

        self._initialized = True
        self._finalized = False
        logger.info(f"{self.name}: successfully initialized")

    def _fetch(self, event, key):
        try:
            return event.retrieve(key)
        except MissingInputError:
            logger.error(f"{self.name}: could not retrieve '{key}'. Aborting")
            raise

    def execute(self, event):
        """
        Run the selection on one event.

        Every input is fetched before any counter is touched, so an
        event with a missing input leaves the cutflow unchanged.

        Parameters
        ----------
        event : Event
            Event to select. Electrons get their ``pass_sel`` marker,
            outputs are recorded in ``event.store``.

        Returns
        -------
        bool
            True if the event passes for at least one variant.
        """
        if not self._initialized:
            raise RuntimeError(f"{self.name}: execute() called before initialize()")

        config = self.config
        if config.debug:
            logger.debug(f"{self.name}: applying electron selection")

        try:
            weight = event.weight()
            vertex = event.primary_vertex()
        except MissingInputError as err:
            logger.error(f"{self.name}: {err}. Aborting")
            raise

        if not config.input_algo:
            variants = None
            collections = [self._fetch(event, config.input_container)]
        else:
            variants = list(self._fetch(event, config.input_algo))
            collections = [
                self._fetch(event, config.input_container + variant)
                for variant in variants
            ]
            if config.debug:
                logger.debug(f"{self.name}: input list of variants size {len(variants)}")

        self.cutflow.n_events += 1

        if variants is None:
            result = self.execute_selection(collections[0], vertex, weight, True)
            if result.event_pass and result.selected is not None:
                event.record(config.output_container, result.selected)
            event_pass = result.event_pass

        else:
            event_pass = False
            passing_variants = []
            for i, (variant, electrons) in enumerate(zip(variants, collections)):
                # Only the first (nominal) variant feeds the cutflow
                result = self.execute_selection(electrons, vertex, weight, i == 0)
                if config.debug:
                    logger.debug(
                        f"{self.name}: variant '{variant}' "
                        f"({config.input_container + variant}) pass={result.event_pass}"
                    )

                if result.event_pass:
                    passing_variants.append(variant)
                    if result.selected is not None:
                        event.record(config.output_container + variant, result.selected)

                event_pass = event_pass or result.event_pass

            event.record(config.output_algo, passing_variants)
            if config.debug:
                logger.debug(
                    f"{self.name}: output list of variants size {len(passing_variants)}"
                )

        if not event_pass:
            event.skip = True

        return event_pass

    def execute_selection(self, electrons, vertex, weight, count_pass):
        """
        Select the electrons of one collection.

        Parameters
        ----------
        electrons : list of Electron
            Input collection, in the order it is evaluated.
        vertex : Vertex
            Primary vertex of the event.
        weight : float
            Event weight.
        count_pass : bool
            Whether this pass updates the cutflow.

        Returns
        -------
        SelectionResult
        """
        config = self.config
        decorate = config.decorate_selected_objects
        selected = [] if config.create_selected_container else None

        n_obj, n_pass = 0, 0
        for electron in electrons:
            # Past the processing cap, mark the rest as not evaluated
            if config.n_to_process > 0 and n_obj >= config.n_to_process:
                if not decorate:
                    break
                electron.pass_sel = PassSel.NOT_EVALUATED
                continue

            n_obj += 1
            passed = pass_cuts(electron, vertex, config, self.tools)
            if decorate:
                electron.pass_sel = PassSel.PASS if passed else PassSel.FAIL

            if passed:
                n_pass += 1
                if selected is not None:
                    selected.append(electron)

        if config.debug:
            logger.debug(
                f"{self.name}: initial electrons {n_obj} - selected electrons {n_pass}"
            )

        event_pass = True
        if config.pass_min > 0 and n_pass < config.pass_min:
            event_pass = False
        if config.pass_max > 0 and n_pass > config.pass_max:
            event_pass = False

        if count_pass:
            self.cutflow.record(n_obj, n_pass, event_pass, weight)

        return SelectionResult(event_pass, selected, n_obj, n_pass)

    def finalize(self):
        """
        Write the cutflow and release the tools.

        Returns
        -------
        tuple
            (raw, weighted) passed-event counts.
        """
        if self._finalized:
            raise RuntimeError(f"{self.name}: finalize() called twice")

        cutflow = self.cutflow
        if self.config.use_cutflow:
            logger.info(f"{self.name}: filling cutflow")
        counts = cutflow.flush(*self._cutflow_hists, self.name)

        logger.info(
            f"{self.name}: {cutflow.n_events} events, "
            f"{cutflow.n_events_pass} passed ({cutflow.weighted_events_pass:.3f} weighted), "
            f"{cutflow.n_objects_pass}/{cutflow.n_objects} electrons passed"
        )

        self.tools = None
        self._initialized = False
        self._finalized = True
        return counts
