class GraphDefinitionException(Exception):
    def __init__(self, message: str, graph_name: str):
        super().__init__(message)
        self.message = message
        self.graph_name = graph_name


class UnknownRouteException(Exception):
    def __init__(self, message: str, step: str, route: object):
        super().__init__(message)
        self.message = message
        self.step = step
        self.route = route


class UnknownStateFieldException(Exception):
    def __init__(self, message: str, step: str, fields: list[str]):
        super().__init__(message)
        self.message = message
        self.step = step
        self.fields = fields


class ReasoningBudgetExceeded(Exception):
    def __init__(self, message: str, used: int, limit: int):
        super().__init__(message)
        self.message = message
        self.used = used
        self.limit = limit


class ReasoningServiceException(Exception):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.message = message
        self.attempts = attempts
