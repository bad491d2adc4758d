"""Errors raised by the alignment engine."""


class InsufficientCorrespondencesError(ValueError):
    """Fewer landmark pairs than a strict aligner requires.

    Recoverable: the caller should ask the user for more picks.
    """

    def __init__(self, n_correspondences: int, required: int):
        self.n_correspondences = n_correspondences
        self.required = required
        super().__init__(
            f"At least {required} correspondences are required, got {n_correspondences}"
        )
