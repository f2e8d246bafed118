"""
Identification and isolation decision tools.

The selection treats each tool as an opaque predicate: after
``initialize()``, ``accept(electron)`` says yes or no. The default
implementations below read decisions stored upstream on the electron
(derivation flags, isolation variables); any object with the same two
methods can be injected instead.
"""

from dataclasses import dataclass

from src.electrons.logger import logger


class PredicateTool:
    """Base class of the decision tools."""

    def __init__(self, name):
        self.name = name

    def initialize(self):
        """Check the tool setup; raise on an unusable configuration."""

    def accept(self, electron):
        raise NotImplementedError


def _check_conf_file(tool, config_file):
    if not config_file.endswith(".conf"):
        raise ValueError(
            f"{tool}: operating point file '{config_file}' is not a .conf file"
        )


class LikelihoodTool(PredicateTool):
    """
    Likelihood identification at one operating point.

    Accepts electrons carrying a true ``DFCommonElectronsLH<Level>``
    decoration.
    """

    def __init__(self, name, level, config_file):
        super().__init__(name)
        self.level = level
        self.config_file = config_file
        self.decoration = f"DFCommonElectronsLH{level.value}"

    def initialize(self):
        _check_conf_file(self.name, self.config_file)
        logger.debug(f"{self.name}: {self.decoration} from {self.config_file}")

    def accept(self, electron):
        return bool(electron.decorations.get(self.decoration, False))


class CutBasedTool(PredicateTool):
    """Cut-based (isEM) identification, read from the ``PIDName`` flag."""

    def __init__(self, name, mask, pid_name, config_file):
        super().__init__(name)
        self.mask = mask
        self.pid_name = pid_name
        self.config_file = config_file

    def initialize(self):
        _check_conf_file(self.name, self.config_file)
        if not self.pid_name:
            raise ValueError(f"{self.name}: empty PIDName")
        logger.debug(f"{self.name}: {self.mask.value} via {self.pid_name}")

    def accept(self, electron):
        return bool(electron.decorations.get(self.pid_name, False))


class IsolationTool(PredicateTool):
    """
    Fixed-cut isolation on one calorimeter and one track variable.

    With ``relative`` the isolation energy is divided by the electron
    pT before comparing it to the cut. Both variables must be below
    their cut; a missing variable fails.
    """

    def __init__(self, name, calo_type, calo_cut, track_type, track_cut, relative=True):
        super().__init__(name)
        self.cuts = {calo_type.value: calo_cut, track_type.value: track_cut}
        self.relative = relative

    def initialize(self):
        for iso_type, cut in self.cuts.items():
            if not cut > 0:
                raise ValueError(f"{self.name}: non-positive cut {cut} on {iso_type}")

    def accept(self, electron):
        for iso_type, cut in self.cuts.items():
            value = electron.isolation.get(iso_type)
            if value is None:
                return False
            if self.relative:
                if electron.pt <= 0:
                    return False
                value = value / electron.pt
            if not value < cut:
                return False
        return True


@dataclass
class SelectionTools:
    likelihood: PredicateTool
    cut_based: PredicateTool
    isolation: PredicateTool

    def __iter__(self):
        return iter((self.likelihood, self.cut_based, self.isolation))


def build_tools(config, name):
    """
    Build the default tools of a selector.

    Parameters
    ----------
    config : SelectorConfig
        Selector configuration.
    name : str
        Selector name, used to label the tools.

    Returns
    -------
    SelectionTools
    """
    conf_dir = config.pid_config_dir
    return SelectionTools(
        likelihood=LikelihoodTool(
            f"AsgElectronLikelihoodTool_{name}",
            config.lh_pid,
            conf_dir + config.lh_operating_point,
        ),
        cut_based=CutBasedTool(
            f"AsgElectronIsEMSelector_{name}",
            config.cut_based_pid_mask,
            config.pid_name,
            conf_dir + config.cut_based_operating_point,
        ),
        isolation=IsolationTool(
            f"ElectronIsolationSelectionTool_{name}",
            config.calo_based_iso_type,
            config.calo_based_iso_cut,
            config.track_based_iso_type,
            config.track_based_iso_cut,
            relative=config.use_relative_iso,
        ),
    )
