"""Profile upload to the management server.

Example::

    from mdmforge.submission import SubmissionPipeline

    result = await SubmissionPipeline().submit(composer.build(), session)
    print(result.outcome)  # created / updated
"""

from mdmforge.submission.pipeline import SubmissionPipeline

__all__ = ["SubmissionPipeline"]
