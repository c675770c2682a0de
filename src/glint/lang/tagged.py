import attr
from typing_extensions import Unpack

from glint.lang import symbol as sym
from glint.lang.interfaces import ILispObject
from glint.lang.obj import PrintSettings, lrepr

JSX_TAG = sym.symbol("jsx")
JS_TAG = sym.symbol("js")


@attr.frozen(repr=False)
class TaggedLiteral(ILispObject):
    """A tagged literal form such as ``#jsx [:div "hi"]``.

    The reader keeps the tag attached to its form for the tags whose meaning is given
    by the analyzer rather than by a data reader function."""

    tag: sym.Symbol
    form: object

    @property
    def is_jsx(self) -> bool:
        """Return True if this is JSX element markup."""
        return self.tag == JSX_TAG

    @property
    def is_js(self) -> bool:
        """Return True if this is a literal JavaScript array or object."""
        return self.tag == JS_TAG

    def _lrepr(self, **kwargs: Unpack[PrintSettings]) -> str:
        return f"#{self.tag} {lrepr(self.form, **kwargs)}"


def tagged_literal(tag: sym.Symbol, form) -> TaggedLiteral:
    if not isinstance(tag, sym.Symbol):
        raise TypeError(f"tag must be a Symbol, not '{type(tag)}'")
    return TaggedLiteral(tag, form)
