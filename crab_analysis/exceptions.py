"""
Errors and warnings raised by the analysis functions.
"""


class MissingDataError(ValueError):
    """
    Too few non-missing (paired) observations for the requested analysis.

    Raised after the per-analysis missing-value filter, so the message names
    the variables and the subset that came up empty.
    """

    def __init__(self, variables, n_available=0, n_required=1, subset=None):
        self.variables = tuple(variables)
        self.n_available = n_available
        self.n_required = n_required
        self.subset = subset

        where = f" in subset '{subset}'" if subset else ""
        super().__init__(
            f"{' ~ '.join(self.variables)}: {n_available} complete observation(s){where}, "
            f"need at least {n_required}"
        )


class DegenerateFitWarning(UserWarning):
    """Fit on a collinear or near-constant predictor; estimates may be unstable."""
