"""Built-in CLI sub-commands for mdmforge.

* :mod:`~mdmforge.commands.account` -- add, list, remove and wipe accounts.
* :mod:`~mdmforge.commands.auth` -- probe servers, sign in and out,
  diagnostics.
* :mod:`~mdmforge.commands.profile` -- templates, validation, export and
  submission of profile definitions.

Each module exports a :class:`typer.Typer` sub-application that
:func:`mdmforge.app.register_commands` attaches to the root app.
"""
