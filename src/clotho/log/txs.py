"""
Interceptors integrating the Application Log into every transition
"""

from clotho.kernel.context import Context, Interceptor
from clotho.log.module import DEFAULT, emitter_of
from clotho.module.models import Module, SystemMap

APP_LOG = "app-log"


def inject_app_log(system_map: SystemMap) -> SystemMap:
    """
    Ensure `app-log` exists and every other module depends on it

    Existing `app-log` fields are kept; only missing default fields are added.
    """
    app_log = system_map.get(APP_LOG)
    injected: SystemMap = {
        APP_LOG: app_log.merge(DEFAULT, overwrite=False)
        if app_log is not None
        else Module.coerce(DEFAULT)
    }
    for key, module in system_map.items():
        if key != APP_LOG:
            injected[key] = module.model_copy(update={"deps": module.deps | {APP_LOG}})
    return injected


inject = Interceptor(
    name="log.inject",
    enter=lambda ctx: ctx.evolve(app=inject_app_log(ctx.app)),
)


def _pause_emitter(ctx: Context) -> Context:
    emitter = emitter_of(_app_log_state(ctx))
    if emitter is not None:
        emitter.pause()
    return ctx


def _resume_emitter(ctx: Context) -> Context:
    emitter = emitter_of(_app_log_state(ctx))
    if emitter is not None:
        emitter.resume()
    return ctx


def _app_log_state(ctx: Context):
    app_log = ctx.app.get(APP_LOG)
    return app_log.state if app_log is not None else None


# Buffers Application Events while a transition runs and flushes them once the
# system has settled, whether it succeeded or failed.
pause = Interceptor(
    name="log.pause",
    enter=_pause_emitter,
    leave=_resume_emitter,
    error=_resume_emitter,
)
