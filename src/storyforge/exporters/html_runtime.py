"""Self-contained HTML export with an embedded player.

The document carries the full scene array as inline JSON and a small script
that re-implements the state engine rules: requirement gating, consequence
application with kind binding and clamping, all-or-nothing transitions and
the terminal ending. It loads nothing from the network; only ``data:``
images are displayed.
"""

from __future__ import annotations

import html
import json

from ..model import TERMINAL_SCENE_ID, Project, Theme
from ..validation import validate_for_export

_THEME_COLOURS: dict[Theme, tuple[str, str, str, str]] = {
    # background, panel, text, accent
    Theme.DARK: ("#111827", "#1f2937", "#e5e7eb", "#3b82f6"),
    Theme.LIGHT: ("#f9fafb", "#ffffff", "#111827", "#2563eb"),
    Theme.FANTASY: ("#1c1917", "#292524", "#fef3c7", "#d97706"),
    Theme.SCIFI: ("#020617", "#0f172a", "#cffafe", "#06b6d4"),
}

_STYLE = """
:root { --bg: %s; --panel: %s; --text: %s; --accent: %s; }
* { box-sizing: border-box; }
body { margin: 0; background: var(--bg); color: var(--text);
  font-family: Georgia, "Times New Roman", serif; line-height: 1.6; }
main { max-width: 760px; margin: 0 auto; padding: 24px; }
header h1 { margin-bottom: 4px; }
header p { opacity: 0.8; }
.scene { background: var(--panel); border-radius: 12px; padding: 20px 24px; }
.scene img { width: 100%%; border-radius: 8px; }
.choices { list-style: none; padding: 0; }
.choice { display: block; width: 100%%; margin: 10px 0; padding: 12px 14px;
  text-align: left; font: inherit; color: var(--text); background: transparent;
  border: 1px solid var(--accent); border-radius: 8px; cursor: pointer; }
.choice:hover:enabled { background: var(--accent); color: var(--bg); }
.choice:disabled { opacity: 0.45; cursor: not-allowed; }
.choice .reason { display: block; font-size: 0.8em; opacity: 0.8; }
.notice { color: #f87171; min-height: 1.5em; }
.status { font-size: 0.85em; opacity: 0.75; margin-top: 16px; }
.controls { margin-top: 16px; }
.controls button { font: inherit; padding: 8px 14px; border-radius: 8px;
  border: 1px solid var(--accent); background: transparent; color: var(--text); cursor: pointer; }
"""

_RUNTIME = r"""
(function () {
  "use strict";
  var data = JSON.parse(document.getElementById("story-data").textContent);
  var TERMINAL = data.terminal;
  var scenes = {};
  data.scenes.forEach(function (scene) {
    if (!has(scenes, scene.id)) { scenes[scene.id] = scene; }
  });
  var compare = {
    ">": function (a, b) { return a > b; },
    "<": function (a, b) { return a < b; },
    "=": function (a, b) { return a === b; },
    ">=": function (a, b) { return a >= b; },
    "<=": function (a, b) { return a <= b; }
  };
  var state = null;
  var notice = "";

  function has(obj, key) { return Object.prototype.hasOwnProperty.call(obj, key); }
  function isNumber(v) { return typeof v === "number" && isFinite(v); }
  function isCount(v) { return isNumber(v) && Math.floor(v) === v && v >= 0; }
  function copy(obj) {
    var out = {};
    Object.keys(obj).forEach(function (key) { out[key] = obj[key]; });
    return out;
  }

  function readValue(kind, key) {
    if (has(state.variables, key) && state.kinds[key] === kind) { return state.variables[key]; }
    return kind === "flag" ? false : 0;
  }

  function kindConflict(kinds, key, kind) {
    if (has(kinds, key) && kinds[key] !== kind) {
      return "'" + key + "' holds a " + kinds[key] + ", not a " + kind;
    }
    return null;
  }

  function compareCount(req, current) {
    if (!isNumber(req.value)) { return req.kind + " '" + req.key + "' must be compared with a number"; }
    if (!has(compare, req.operator)) { return "unknown operator '" + req.operator + "'"; }
    if (compare[req.operator](current, req.value)) { return null; }
    return "requires " + req.kind + " '" + req.key + "' " + req.operator + " " + req.value +
      " (have " + current + ")";
  }

  var evaluators = {
    item: function (req) { return compareCount(req, readValue("item", req.key)); },
    attribute: function (req) { return compareCount(req, readValue("attribute", req.key)); },
    flag: function (req) {
      if (req.operator !== "=") { return "flag '" + req.key + "' can only be compared with '='"; }
      if (typeof req.value !== "boolean") { return "flag '" + req.key + "' must be compared with true or false"; }
      if (readValue("flag", req.key) === req.value) { return null; }
      return "requires flag '" + req.key + "' to be " + (req.value ? "set" : "unset");
    }
  };

  function blockedReason(choice) {
    var reqs = choice.requirements || [];
    for (var i = 0; i < reqs.length; i++) {
      var req = reqs[i];
      if (!has(evaluators, req.kind)) { return "unknown requirement kind '" + req.kind + "'"; }
      var conflict = kindConflict(state.kinds, req.key, req.kind);
      var reason = conflict || evaluators[req.kind](req);
      if (reason) { return reason; }
    }
    return null;
  }

  function applyCount(c, current) {
    if (c.operation === "set") { return c.value; }
    if (c.operation === "add") { return current + c.value; }
    return Math.max(0, current - c.value);
  }

  var appliers = {
    item: function (c, vars) {
      if (!isCount(c.value)) { return "item '" + c.key + "' needs a non-negative whole count"; }
      vars[c.key] = applyCount(c, has(vars, c.key) ? vars[c.key] : 0);
      return null;
    },
    attribute: function (c, vars) {
      if (!isNumber(c.value)) { return "attribute '" + c.key + "' needs a numeric value"; }
      vars[c.key] = applyCount(c, has(vars, c.key) ? vars[c.key] : 0);
      return null;
    },
    flag: function (c, vars) {
      if (c.operation === "add") { return "flag '" + c.key + "' cannot be added to"; }
      if (c.operation === "remove") { vars[c.key] = false; return null; }
      if (typeof c.value !== "boolean") { return "flag '" + c.key + "' can only be set to true or false"; }
      vars[c.key] = c.value;
      return null;
    }
  };

  function select(choice) {
    if (state.status !== "active") { return; }
    var reason = blockedReason(choice);
    var terminal = choice.nextSceneId === TERMINAL;
    if (!reason && !terminal && !has(scenes, choice.nextSceneId)) {
      reason = "target scene '" + choice.nextSceneId + "' does not exist";
    }
    var vars = copy(state.variables);
    var kinds = copy(state.kinds);
    var cons = choice.consequences || [];
    for (var i = 0; !reason && i < cons.length; i++) {
      var c = cons[i];
      if (!has(appliers, c.kind)) { reason = "unknown consequence kind '" + c.kind + "'"; break; }
      if (["add", "remove", "set"].indexOf(c.operation) < 0) {
        reason = "unknown operation '" + c.operation + "'";
        break;
      }
      reason = kindConflict(kinds, c.key, c.kind) || appliers[c.kind](c, vars);
      if (!reason) { kinds[c.key] = c.kind; }
    }
    if (reason) {
      notice = reason;
      render();
      return;
    }
    state = {
      scene: terminal ? state.scene : choice.nextSceneId,
      variables: vars,
      kinds: kinds,
      status: terminal ? "ended" : "active",
      history: state.history.concat([choice.id])
    };
    notice = "";
    render();
  }

  function element(tag, className, text) {
    var node = document.createElement(tag);
    if (className) { node.className = className; }
    if (text !== undefined && text !== null) { node.textContent = text; }
    return node;
  }

  function statusLine() {
    var parts = [];
    Object.keys(state.variables).sort().forEach(function (key) {
      var kind = state.kinds[key];
      var value = state.variables[key];
      if (kind === "item" && value > 0) { parts.push(key + " x" + value); }
      if (kind === "attribute") { parts.push(key + ": " + value); }
    });
    return parts.length ? parts.join(" | ") : "Your pack is empty.";
  }

  function render() {
    var root = document.getElementById("game");
    root.innerHTML = "";
    var scene = scenes[state.scene];
    var panel = element("div", "scene");
    if (!scene) {
      panel.appendChild(element("p", null, "This story has no scenes to play."));
      root.appendChild(panel);
      return;
    }
    if (typeof scene.image === "string" && scene.image.indexOf("data:") === 0) {
      var img = element("img");
      img.src = scene.image;
      img.alt = scene.title;
      panel.appendChild(img);
    }
    panel.appendChild(element("h2", null, scene.title));
    panel.appendChild(element("p", null, scene.description));
    if (state.status === "ended") {
      panel.appendChild(element("h3", null, "The End"));
    } else {
      var list = element("ol", "choices");
      scene.choices.forEach(function (choice, index) {
        var item = element("li");
        var button = element("button", "choice", (index + 1) + ". " + choice.text);
        button.type = "button";
        var reason = blockedReason(choice);
        if (reason) {
          button.disabled = true;
          button.appendChild(element("span", "reason", reason));
        }
        button.addEventListener("click", function () { select(choice); });
        item.appendChild(button);
        list.appendChild(item);
      });
      panel.appendChild(list);
    }
    panel.appendChild(element("p", "notice", notice));
    panel.appendChild(element("p", "status", statusLine()));
    root.appendChild(panel);
  }

  function restart() {
    state = { scene: data.startSceneId, variables: {}, kinds: {}, status: "active", history: [] };
    notice = "";
    render();
  }

  document.getElementById("restart").addEventListener("click", restart);
  document.addEventListener("keydown", function (event) {
    var number = parseInt(event.key, 10);
    var scene = scenes[state.scene];
    if (!scene || isNaN(number) || number < 1 || number > scene.choices.length) { return; }
    select(scene.choices[number - 1]);
  });
  restart();
})();
"""


def _script_json(payload: object) -> str:
    # Keeps "</script>" and HTML entities in story text from closing the block.
    encoded = json.dumps(payload, ensure_ascii=False)
    return (
        encoded.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def export_html(project: Project) -> str:
    """Render a single playable HTML document for ``project``.

    Raises:
        ValidationError: If the project is structurally invalid.
    """

    validate_for_export(project, "html").raise_for_errors()

    start = project.start_scene()
    story_data = {
        "title": project.name,
        "startSceneId": start.id if start is not None else None,
        "terminal": TERMINAL_SCENE_ID,
        "scenes": [scene.model_dump(mode="json", by_alias=True) for scene in project.scenes],
    }
    title = html.escape(project.name)
    description = html.escape(project.description)
    style = _STYLE % _THEME_COLOURS[project.settings.theme]

    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            '<meta name="viewport" content="width=device-width, initial-scale=1">',
            f"<title>{title}</title>",
            f"<style>{style}</style>",
            "</head>",
            "<body>",
            "<main>",
            f"<header><h1>{title}</h1><p>{description}</p></header>",
            '<section id="game" aria-live="polite"></section>',
            '<div class="controls"><button id="restart" type="button">Restart</button></div>',
            "</main>",
            f'<script type="application/json" id="story-data">{_script_json(story_data)}</script>',
            f"<script>{_RUNTIME}</script>",
            "</body>",
            "</html>",
            "",
        ]
    )


__all__ = ["export_html"]
