"""
Lookup table of species/site disturbance-parameter classes.

Each class carries the two thresholds used by tree-level event detection:
- ai_mm: minimum abrupt-increase index for a release
- gap_mm: minimum mean early-life increment for a gap origin

The table is immutable for the duration of a run. It is normally built from
the ``dist_param`` input table; the packaged
``cfg/disturbance_parameters.yaml`` supplies a default set.

Usage:
    >>> table = DisturbanceParameterTable.from_frame(tables['dist_param'])
    >>> table.get('Fagus').ai_mm
    1.25
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

import pandas as pd

from .config_loader import get_config_loader
from .exceptions import MissingColumnError, InvalidDataError, ParameterClassNotFoundError

__all__ = ['DisturbanceParameter', 'DisturbanceParameterTable', 'REQUIRED_COLUMNS']

REQUIRED_COLUMNS = ('dist_param', 'ai_mm', 'gap_mm')


@dataclass(frozen=True)
class DisturbanceParameter:
    """Detection thresholds of one disturbance-parameter class."""
    dist_param: str
    ai_mm: float
    gap_mm: float


class DisturbanceParameterTable:
    """Immutable mapping of ``dist_param`` class to its thresholds.

    Attributes:
        default_class: Class used for cores whose own class is unknown, or
            None to raise on unknown classes
    """

    def __init__(self, parameters: Mapping[str, DisturbanceParameter],
                 default_class: Optional[str] = None):
        self._parameters = MappingProxyType(dict(parameters))
        if default_class is not None and default_class not in self._parameters:
            raise ParameterClassNotFoundError(default_class, self._parameters.keys())
        self.default_class = default_class

    @classmethod
    def from_frame(cls, frame: pd.DataFrame,
                   default_class: Optional[str] = None) -> 'DisturbanceParameterTable':
        """Build the table from a ``dist_param`` DataFrame.

        Raises:
            MissingColumnError: If a required column is absent
            InvalidDataError: On duplicated classes or missing thresholds
        """
        missing = set(REQUIRED_COLUMNS) - set(frame.columns)
        if missing:
            raise MissingColumnError('dist_param', missing)
        duplicated = frame['dist_param'][frame['dist_param'].duplicated()]
        if len(duplicated):
            raise InvalidDataError("dist_param table",
                                   f"duplicated classes {sorted(map(str, duplicated.unique()))}")
        if frame[['ai_mm', 'gap_mm']].isna().any().any():
            raise InvalidDataError("dist_param table", "ai_mm and gap_mm must be defined")

        parameters = {
            row.dist_param: DisturbanceParameter(
                dist_param=row.dist_param,
                ai_mm=float(row.ai_mm),
                gap_mm=float(row.gap_mm),
            )
            for row in frame.itertuples(index=False)
        }
        return cls(parameters, default_class=default_class)

    @classmethod
    def from_config(cls, data: Optional[Dict] = None) -> 'DisturbanceParameterTable':
        """Build the table from configuration (packaged defaults when ``data`` is None)."""
        if data is None:
            data = get_config_loader().load_default_parameters()
        classes = data.get('classes', {})
        parameters = {
            name: DisturbanceParameter(dist_param=name,
                                       ai_mm=float(values['ai_mm']),
                                       gap_mm=float(values['gap_mm']))
            for name, values in classes.items()
        }
        return cls(parameters, default_class=data.get('default_class'))

    def get(self, dist_param: str) -> DisturbanceParameter:
        """Get the thresholds of a class.

        Raises:
            ParameterClassNotFoundError: If the class is unknown and no default is set
        """
        if dist_param in self._parameters:
            return self._parameters[dist_param]
        if self.default_class is not None:
            return self._parameters[self.default_class]
        raise ParameterClassNotFoundError(dist_param, self._parameters.keys())

    def as_frame(self) -> pd.DataFrame:
        """Return the table as a ``dist_param`` DataFrame."""
        return pd.DataFrame(
            [(p.dist_param, p.ai_mm, p.gap_mm) for p in self._parameters.values()],
            columns=list(REQUIRED_COLUMNS),
        )

    def __contains__(self, dist_param: object) -> bool:
        return dist_param in self._parameters

    def __iter__(self) -> Iterator[str]:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(classes={list(self._parameters)})"
