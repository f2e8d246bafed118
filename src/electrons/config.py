"""
Configuration of the electron selection stage.

A selector configuration is a flat YAML mapping using the option names
of the original key/value files (``InputContainer``, ``pTMin``, ...).
It is parsed once into an immutable :class:`SelectorConfig`; every
check happens here, before the first event is read.
"""

import os
from dataclasses import dataclass, field, fields
from enum import Enum

import yaml

from src.electrons.errors import ConfigurationError
from src.electrons.logger import logger


# Kinematic thresholds equal to this value switch their cut off
SENTINEL = 1e8


class LikelihoodPID(Enum):
    """Likelihood identification operating points."""

    VERY_LOOSE = "VeryLoose"
    LOOSE = "Loose"
    MEDIUM = "Medium"
    TIGHT = "Tight"
    VERY_TIGHT = "VeryTight"
    LOOSE_RELAXED = "LooseRelaxed"


class CutBasedPIDMask(Enum):
    """Cut-based (isEM) identification bit-masks."""

    LOOSE_PP = "ElectronLoosePP"
    LOOSE_1 = "ElectronLoose1"
    MEDIUM_PP = "ElectronMediumPP"
    MEDIUM_1 = "ElectronMedium1"
    TIGHT_PP = "ElectronTightPP"
    TIGHT_1 = "ElectronTight1"
    LOOSE_HLT = "ElectronLooseHLT"
    MEDIUM_HLT = "ElectronMediumHLT"
    TIGHT_HLT = "ElectronTightHLT"


class IsolationType(Enum):
    """Isolation variables understood by the isolation tool."""

    ETCONE20 = "etcone20"
    ETCONE30 = "etcone30"
    ETCONE40 = "etcone40"
    TOPOETCONE20 = "topoetcone20"
    TOPOETCONE30 = "topoetcone30"
    TOPOETCONE40 = "topoetcone40"
    PTCONE20 = "ptcone20"
    PTCONE30 = "ptcone30"
    PTCONE40 = "ptcone40"
    PTVARCONE20 = "ptvarcone20"
    PTVARCONE30 = "ptvarcone30"
    PTVARCONE40 = "ptvarcone40"

    @property
    def is_calo(self):
        return "etcone" in self.value


# Name -> enum lookup tables, the only accepted spellings
LH_PID_NAMES = {member.value: member for member in LikelihoodPID}
CUT_BASED_MASK_NAMES = {member.value: member for member in CutBasedPIDMask}
ISOLATION_NAMES = {member.value: member for member in IsolationType}


def _option(key, default, kind):
    return field(default=default, metadata={"key": key, "kind": kind})


def _split_keys(value):
    """
    Turn a comma-separated string (or a YAML list) of decoration names
    into a tuple of non-empty, stripped names.
    """
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(key).strip() for key in value if str(key).strip())


def _lookup(table, value, option):
    if isinstance(value, Enum):
        value = value.value
    try:
        return table[value]
    except KeyError:
        raise ConfigurationError(
            f"Unknown value '{value}' for {option}, "
            f"expected one of {sorted(table)}"
        ) from None


@dataclass(frozen=True)
class SelectorConfig:
    """
    Immutable electron selector configuration.

    Field defaults are those of the original option table; the YAML
    key of each field is kept in its metadata.
    """

    debug: bool = _option("Debug", False, bool)
    use_cutflow: bool = _option("UseCutFlow", True, bool)

    # Containers and side-channel keys
    input_container: str = _option("InputContainer", "", str)
    input_algo: str = _option("InputAlgo", "", str)
    output_algo: str = _option("OutputAlgo", "ElectronCollection_Sel_Algo", str)
    decorate_selected_objects: bool = _option("DecorateSelectedObjects", True, bool)
    create_selected_container: bool = _option("CreateSelectedContainer", False, bool)
    output_container: str = _option("OutputContainer", "", str)

    # Object and event counts
    n_to_process: int = _option("NToProcess", -1, int)
    pass_max: int = _option("PassMax", -1, int)
    pass_min: int = _option("PassMin", -1, int)

    # Kinematic and track cuts
    pt_max: float = _option("pTMax", SENTINEL, float)
    pt_min: float = _option("pTMin", SENTINEL, float)
    eta_max: float = _option("etaMax", SENTINEL, float)
    veto_crack: bool = _option("VetoCrack", True, bool)
    d0_max: float = _option("d0Max", SENTINEL, float)
    d0sig_max: float = _option("d0sigMax", SENTINEL, float)
    z0sintheta_max: float = _option("z0sinthetaMax", SENTINEL, float)

    do_author_cut: bool = _option("DoAuthorCut", True, bool)
    do_oq_cut: bool = _option("DoOQCut", True, bool)

    # Identification
    conf_dir_pid: str = _option("ConfDirPID", "mc15_20150224", str)
    do_lh_pid_cut: bool = _option("DoLHPIDCut", False, bool)
    lh_pid: LikelihoodPID = _option("LHPID", LikelihoodPID.LOOSE, str)
    lh_operating_point: str = _option(
        "LHOperatingPoint", "ElectronLikelihoodLooseOfflineConfig2015.conf", str
    )
    do_cut_based_pid_cut: bool = _option("DoCutBasedPIDCut", False, bool)
    cut_based_pid_mask: CutBasedPIDMask = _option(
        "CutBasedPIDMask", CutBasedPIDMask.LOOSE_PP, str
    )
    pid_name: str = _option("PIDName", "isEMLoose", str)
    cut_based_operating_point: str = _option(
        "CutBasedOperatingPoint", "ElectronIsEMLooseSelectorCutDefs2012.conf", str
    )

    # Isolation
    do_isolation_cut: bool = _option("DoIsolationCut", False, bool)
    use_relative_iso: bool = _option("UseRelativeIso", True, bool)
    calo_based_iso_type: IsolationType = _option(
        "CaloBasedIsoType", IsolationType.ETCONE20, str
    )
    calo_based_iso_cut: float = _option("CaloBasedIsoCut", 0.05, float)
    track_based_iso_type: IsolationType = _option(
        "TrackBasedIsoType", IsolationType.PTCONE20, str
    )
    track_based_iso_cut: float = _option("TrackBasedIsoCut", 0.05, float)

    # Decoration names kept for downstream annotation, not applied as cuts
    pass_decor_keys: tuple = _option("PassDecorKeys", (), list)
    fail_decor_keys: tuple = _option("FailDecorKeys", (), list)

    def __post_init__(self):
        # Coerce names onto enums so that direct construction is checked too
        coerce = {
            "lh_pid": _lookup(LH_PID_NAMES, self.lh_pid, "LHPID"),
            "cut_based_pid_mask": _lookup(
                CUT_BASED_MASK_NAMES, self.cut_based_pid_mask, "CutBasedPIDMask"
            ),
            "calo_based_iso_type": _lookup(
                ISOLATION_NAMES, self.calo_based_iso_type, "CaloBasedIsoType"
            ),
            "track_based_iso_type": _lookup(
                ISOLATION_NAMES, self.track_based_iso_type, "TrackBasedIsoType"
            ),
            "pass_decor_keys": _split_keys(self.pass_decor_keys),
            "fail_decor_keys": _split_keys(self.fail_decor_keys),
        }
        for name, value in coerce.items():
            object.__setattr__(self, name, value)

        self.validate()

    def validate(self):
        """Check the cross-option requirements."""
        if not self.input_container:
            raise ConfigurationError("InputContainer is empty!")

        if not self.calo_based_iso_type.is_calo:
            raise ConfigurationError(
                f"CaloBasedIsoType '{self.calo_based_iso_type.value}' "
                "is not a calorimeter isolation variable"
            )
        if self.track_based_iso_type.is_calo:
            raise ConfigurationError(
                f"TrackBasedIsoType '{self.track_based_iso_type.value}' "
                "is not a track isolation variable"
            )

        if self.create_selected_container and not self.output_container:
            raise ConfigurationError(
                "CreateSelectedContainer requires a non-empty OutputContainer"
            )

    @classmethod
    def from_dict(cls, options):
        """
        Build a configuration from a mapping of option names to values.

        Parameters
        ----------
        options : dict
            Option name (e.g. ``pTMin``) to raw value.

        Returns
        -------
        SelectorConfig
        """
        if not isinstance(options, dict):
            raise ConfigurationError(
                f"Selector configuration must be a mapping, got {type(options).__name__}"
            )

        by_key = {f.metadata["key"]: f for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            if key not in by_key:
                logger.warning(f"Ignoring unknown selector option '{key}'")
                continue
            spec = by_key[key]
            kwargs[spec.name] = _check_type(key, value, spec.metadata["kind"])

        return cls(**kwargs)

    @property
    def pid_config_dir(self):
        return f"ElectronPhotonSelectorTools/offline/{self.conf_dir_pid}/"

    def describe(self):
        """Key/value listing of the configuration, one option per line."""
        lines = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = ",".join(value)
            lines.append(f"  {f.metadata['key']:<26}: {value}")
        return "\n".join(lines)


def _check_type(key, value, kind):
    """Validate one raw option value against its declared kind."""
    if kind is bool:
        if isinstance(value, bool):
            return value
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif kind is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        # YAML reads exponents without a dot (1e8) as strings
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
    elif kind is str:
        if isinstance(value, str):
            return value
    elif kind is list:
        if isinstance(value, (str, list, tuple)):
            return value

    raise ConfigurationError(
        f"Option {key} expects a value of type {kind.__name__}, got {value!r}"
    )


def load_config(path):
    """
    Read a selector configuration file.

    Parameters
    ----------
    path : str
        Path to a YAML file holding the option mapping. Environment
        variables and ``~`` in the path are expanded.

    Returns
    -------
    SelectorConfig
    """
    path = os.path.expandvars(os.path.expanduser(path))
    if not os.path.isfile(path):
        raise ConfigurationError(f"Configuration file not found: {path}")

    with open(path) as f:
        try:
            options = yaml.safe_load(f)
        except yaml.YAMLError as err:
            raise ConfigurationError(f"Could not parse {path}: {err}") from err

    return SelectorConfig.from_dict(options or {})
