"""
Object Dictionary module
"""
from typing import Dict, Iterator, Optional, TextIO, Union
import logging

from collections.abc import MutableMapping, Mapping

from .datatypes import *

TObjectDictionary = Union[str, "ObjectDictionary", TextIO, None]

logger = logging.getLogger(__name__)


def import_od(source: TObjectDictionary) -> "ObjectDictionary":
    """Parse an EDS or DCF file.

    :param source:
        Path to object dictionary file or a file like object.

    :return:
        An Object Dictionary instance.
    """
    if source is None:
        return ObjectDictionary()
    if isinstance(source, ObjectDictionary):
        return source
    if hasattr(source, "read"):
        filename = getattr(source, "name", "od.eds")
    else:
        filename = source
    suffix = filename[filename.rfind("."):].lower()
    if suffix in (".eds", ".dcf"):
        from . import eds
        return eds.import_eds(source)
    else:
        raise NotImplementedError("No support for this format")


class ObjectDictionary(MutableMapping):
    """Representation of the readable parts of an object dictionary.

    Maps an index to an :class:`ODRecord` holding the sub-entries.
    """

    indices: Dict[int, "ODRecord"]

    def __init__(self):
        self.indices = {}

    def __getitem__(self, index: int) -> "ODRecord":
        item = self.indices.get(index)
        if item is None:
            raise KeyError("0x%X was not found in Object Dictionary" % index)
        return item

    def __setitem__(self, index: int, obj: "ODRecord"):
        assert index == obj.index
        self.add_object(obj)

    def __delitem__(self, index: int):
        del self.indices[index]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self.indices))

    def __len__(self) -> int:
        return len(self.indices)

    def __contains__(self, index) -> bool:
        return index in self.indices

    def add_object(self, obj: "ODRecord") -> None:
        obj.parent = self
        self.indices[obj.index] = obj

    def add_variable(self, var: "ODVariable", name: Optional[str] = None) -> None:
        """Add a variable, creating the owning record if needed."""
        record = self.indices.get(var.index)
        if record is None:
            record = ODRecord(name or "Unnamed Object", var.index)
            self.add_object(record)
        record.add_member(var)

    def get_variable(self, index: int, subindex: int = 0) -> Optional["ODVariable"]:
        """Get the variable object at specified index and subindex.

        :return: ODVariable if found, else `None`
        """
        obj = self.indices.get(index)
        if obj is None:
            return None
        return obj.get(subindex)


class ODRecord(Mapping):
    """Groups multiple :class:`ODVariable` objects using subindices."""

    def __init__(self, name: str, index: int):
        #: The :class:`ObjectDictionary` owning the record.
        self.parent = None
        #: 16-bit address of the record
        self.index = index
        #: Name of record
        self.name = name
        self.subindices: Dict[int, ODVariable] = {}

    def __repr__(self) -> str:
        return f"<{type(self).__qualname__} {self.name!r} at 0x{self.index:04X}>"

    def __getitem__(self, subindex: int) -> "ODVariable":
        item = self.subindices.get(subindex)
        if item is None:
            raise KeyError("Subindex %s was not found" % subindex)
        return item

    def __len__(self) -> int:
        return len(self.subindices)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self.subindices))

    def __contains__(self, subindex) -> bool:
        return subindex in self.subindices

    def add_member(self, variable: "ODVariable") -> None:
        variable.parent = self
        self.subindices[variable.subindex] = variable


class ODVariable:
    """Simple variable."""

    def __init__(self, name: str, index: int, subindex: int = 0,
                 data_type: Optional[int] = None, access_type: str = "rw"):
        #: The :class:`ODRecord` owning the variable
        self.parent = None
        #: 16-bit address of the object in the dictionary
        self.index = index
        #: 8-bit sub-index of the object in the dictionary
        self.subindex = subindex
        #: String representation of the variable
        self.name = name
        #: Data type according to the standard as an :class:`int`, or None
        #: if the EDS declares a type this library cannot decode
        self.data_type = data_type
        #: Access type, should be "rw", "ro", "wo", or "const"
        self.access_type = access_type

    def __repr__(self) -> str:
        return "<%s %r at 0x%04X:%02X>" % (
            type(self).__qualname__, self.name, self.index, self.subindex)

    @property
    def readable(self) -> bool:
        return "r" in self.access_type or self.access_type == "const"

    @property
    def writable(self) -> bool:
        return "w" in self.access_type
