class KnapsackGAError(Exception):
    """Base for all knapsack_ga exceptions."""

    pass


class ConfigurationError(KnapsackGAError):
    """Invalid run configuration, rejected before any generation runs."""

    pass


class GenomeLengthError(KnapsackGAError):
    """Genomes of different lengths were combined, or a genome does not fit its instance."""

    pass


class InstanceFormatError(KnapsackGAError):
    """A knapsack instance file could not be parsed."""

    pass
