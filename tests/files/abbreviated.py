def make_abbreviated1():
    """@Provides 'abbreviated1'"""
    return "abbreviated1"


def make_abbreviated2():
    """@Provides "abbreviated2" """
    return "abbreviated2"
