from velocity.narrative.smart_summary import smart_summary
from velocity.narrative.synthesizer import (
    clean_summary,
    expanded_label,
    narrate,
    narrate_inline,
    truncate,
)

__all__ = [
    'clean_summary',
    'expanded_label',
    'narrate',
    'narrate_inline',
    'smart_summary',
    'truncate',
]
