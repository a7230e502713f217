from vendorwatch.inference.graph.engine import END
from vendorwatch.workflows.login.state import LoginState, LoginStep


def route_after_load_spec(state: LoginState) -> LoginStep:
    return LoginStep.NAVIGATE


def route_after_navigate(state: LoginState) -> LoginStep:
    return LoginStep.LOCATE


def route_after_locate(state: LoginState) -> LoginStep:
    return LoginStep.FILL


def route_after_fill(state: LoginState) -> LoginStep | str:
    if not state.credentials_filled:
        return END
    return LoginStep.SUBMIT


def route_after_submit(state: LoginState) -> LoginStep:
    return LoginStep.VERIFY


def route_after_verify(state: LoginState) -> LoginStep | str:
    if not state.login_verified:
        return END
    return LoginStep.EXTRACT_SESSION


def route_after_extract_session(state: LoginState) -> str:
    return END
