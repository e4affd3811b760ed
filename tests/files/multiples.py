class Multiples1:
    """
    @Requires 'multiple1.string'
    @Provides name='multiple1'
    """

    def __init__(self, string):
        self.string = string


class Multiples2:
    """
    @Requires ['multiple2.string']
    @Provides name='multiple2'
    """

    def __init__(self, string):
        self.string = string


def not_a_provider():
    """Plain helper without annotations."""
    return None
