"""Profile composition, validation, and serialization.

Modules:
    :mod:`~mdmforge.profile.catalog` -- unit library, privacy services,
    templates.
    :mod:`~mdmforge.profile.composer` -- :class:`ProfileComposer`, which
    builds immutable :class:`~mdmforge.models.Document` snapshots.
    :mod:`~mdmforge.profile.validator` -- three-pass :func:`validate`.
    :mod:`~mdmforge.profile.serializer` -- ``.mobileconfig`` encoding and
    export.
    :mod:`~mdmforge.profile.definition` -- YAML/JSON definition files.

Example::

    from mdmforge.profile import ProfileComposer, validate, export

    composer = ProfileComposer(name="Zoom", identifier="com.acme.zoom")
    document = composer.build()
    if validate(document).is_valid:
        export(document, Path("~/Downloads"))
"""

from mdmforge.profile.composer import ProfileComposer
from mdmforge.profile.serializer import export, serialize
from mdmforge.profile.validator import ensure_valid, validate

__all__ = ["ProfileComposer", "ensure_valid", "export", "serialize", "validate"]
