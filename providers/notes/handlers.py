from pathlib import Path


def _root(credentials):
    root = Path(credentials["notes_dir"]).expanduser()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _note_path(root, name):
    path = (root / name).resolve()
    if root.resolve() not in path.parents:
        raise ValueError(f"Invalid note name: {name}")
    return path


def search_notes(args, credentials):
    query = args["query"].lower()
    limit = int(args.get("limit") or 10)
    hits = []
    for path in sorted(_root(credentials).glob("*.md")):
        text = path.read_text(encoding="utf-8")
        index = text.lower().find(query)
        if index >= 0:
            hits.append({"name": path.name, "snippet": text[max(0, index - 40): index + 80]})
        if len(hits) >= limit:
            break
    return {"matches": hits}


def read_note(args, credentials):
    path = _note_path(_root(credentials), args["name"])
    if not path.exists():
        raise FileNotFoundError(f"No note named {args['name']}")
    return {"name": path.name, "content": path.read_text(encoding="utf-8")}


def write_note(args, credentials):
    path = _note_path(_root(credentials), args["name"])
    path.write_text(args["content"], encoding="utf-8")
    return {"name": path.name, "written": len(args["content"])}


HANDLERS = {"search_notes": search_notes, "read_note": read_note, "write_note": write_note}
