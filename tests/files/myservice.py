class MyService:
    """
    @Requires ['my.model', 'my.service.string']
    @Provides name='my.service'
    """

    def __init__(self, model, string):
        self.model = model
        self.string = string
