from typing import Any

from typewire.types import Lifetime, MemberBindingBehaviour

DEFAULT_OPTION_VALUES: dict[str, Any] = {
    "enable_array_injection": True,
    "enable_list_injection": True,
    "enable_collection_injection": True,
    "enable_enumerable_injection": True,
    "enable_auto_func_injection": True,
    "enable_auto_lazy_injection": True,
    "member_binding": MemberBindingBehaviour.NONE,
}
"""Fallback values for every ``Option``, keyed by the option's value."""

DEFAULT_REGISTRATION_LIFETIME = Lifetime.TRANSIENT

NAME_SEPARATOR = "."
"""Separator of hierarchical registration names (``"db.primary"``)."""
