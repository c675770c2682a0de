from re import Pattern
from typing import Any, Union

from glint.lang import keyword as kw
from glint.lang import list as llist
from glint.lang import map as lmap
from glint.lang import set as lset
from glint.lang import symbol as sym
from glint.lang import vector as vec
from glint.lang.interfaces import IPersistentMap
from glint.lang.tagged import TaggedLiteral

CompilerOpts = IPersistentMap[kw.Keyword, Any]

IterableLispForm = Union[
    llist.PersistentList, lmap.PersistentMap, lset.PersistentSet, vec.PersistentVector
]
LispNumber = Union[int, float]
LispForm = Union[
    bool,
    int,
    float,
    kw.Keyword,
    llist.PersistentList,
    lmap.PersistentMap,
    None,
    Pattern,
    lset.PersistentSet,
    str,
    sym.Symbol,
    vec.PersistentVector,
]
ReaderForm = Union[LispForm, TaggedLiteral]
SpecialForm = llist.PersistentList
