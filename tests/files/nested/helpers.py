class Helper:
    """Unnamed provider, registered under its location.

    @Requires 'model.string'
    """

    def __init__(self, string):
        self.string = string
