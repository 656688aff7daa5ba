"""mdmforge -- compose, validate, and upload device-management configuration profiles.

The package builds ``.mobileconfig`` configuration profiles from an ordered
set of configuration units (including privacy-preference authorizations),
validates them, and uploads them to a Jamf Pro server over its API.

Typical workflow::

    mdmforge account add --server acme.jamfcloud.com --name Acme --default
    mdmforge auth login --client-id abcd1234 --secret-source env:JAMF_SECRET
    mdmforge profile submit zoom.yaml

Modules:
    app: the `mdmforge` command and its global flags.
    models: pydantic models used by every layer.
    config: file locations, global settings, account selection.
    exceptions: errors and the exit codes they map to.
    exit_codes: process exit codes.
    output: stdout results and stderr diagnostics.
    auth: Credential store, connectivity prober, and authentication engine.
    profile: Unit catalog, composer, validator, and serializer.
    submission: Upload pipeline with optimistic create and update fallback.
"""

__version__ = "0.1.0"
