from .utils import event_info as _event_info


def event_info(request):
    return {"event": _event_info()}
