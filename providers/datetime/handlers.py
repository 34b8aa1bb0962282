from datetime import datetime
from zoneinfo import ZoneInfo


def now(args, credentials):
    timezone = args.get("timezone")
    current = datetime.now(ZoneInfo(timezone)) if timezone else datetime.now().astimezone()
    return {"now": current.isoformat(timespec="seconds"), "weekday": current.strftime("%A")}


HANDLERS = {"now": now}
