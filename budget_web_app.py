"""
Budget planner web app.
- List page: search, category and "required only" filters, sortable headers, summary strip and budget cards.
- One row at a time can be edited inline; every field saves on blur through a small JSON endpoint.
- New rows live only in memory until both category and item are filled in, then they are created in the store.
- Detail page (/item?id=N) renders the markdown notes and offers an editor with live preview.
- Run with: `python budget_web_app.py --database sqlite:///budget.db`.
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys

from flask import Flask, request, redirect, url_for, render_template_string, flash, jsonify
from sqlalchemy import create_engine

from config import AppConfig
from editing import EditStateError, InlineEditor, Notice
from formatting import format_currency, render_detail_html, render_markdown
from models import REQUIRED_CHOICES, BudgetItem, Persisted, parse_item_key
from pipeline import BudgetPipeline, computed_subtotal
from repository import BudgetRepository

logger = logging.getLogger(__name__)

SORT_COLUMNS = (
    ("id", "#"),
    ("category", "Category"),
    ("item", "Item"),
    ("required", "Required"),
    ("unitCost", "Unit cost"),
    ("quantity", "Qty"),
    ("subTotal", "Subtotal"),
)


def _item_payload(item: BudgetItem | None) -> dict | None:
    if item is None:
        return None
    return {
        "id": item.key,
        "category": item.category,
        "item": item.item,
        "required": item.required,
        "notes": item.notes,
        "unitCost": item.unit_cost,
        "quantity": item.quantity,
        "subTotal": item.sub_total,
        "mdContent": item.md_content,
    }


# -----------------------------
# App factory (allows testing)
# -----------------------------

def create_app(db_url: str | None = None, *, engine_override=None, config: AppConfig | None = None) -> Flask:
    app = Flask(__name__)
    settings = config or AppConfig.from_env()
    app.secret_key = settings.secret_key

    DB_URL = db_url or settings.database_url
    BUDGET = settings.budget

    if engine_override is not None:
        engine = engine_override
    elif DB_URL.startswith("sqlite"):
        engine = create_engine(DB_URL, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(DB_URL, pool_pre_ping=True)

    repository = BudgetRepository(engine)
    repository.ensure_schema()
    pipeline = BudgetPipeline()
    editor = InlineEditor(pipeline, repository)
    loaded = {"done": False}

    def _flash_notice(notice: Notice | None) -> None:
        if notice is not None:
            flash(notice.message, notice.level)

    def _ensure_loaded() -> None:
        if not loaded["done"]:
            for notice in editor.reload():
                _flash_notice(notice)
            loaded["done"] = True

    def _filter_args() -> dict:
        args = {}
        search = (request.args.get("search") or "").strip()
        category = (request.args.get("category") or "").strip()
        if search:
            args["search"] = search
        if category:
            args["category"] = category
        if request.args.get("required") in ("1", "on", "true"):
            args["required"] = "1"
        return args

    def _back_to_index():
        return redirect(url_for("index", **_filter_args()))

    def _row_key_or_none(key: str):
        try:
            return parse_item_key(key)
        except ValueError:
            return None

    def _summary_payload() -> dict:
        view = pipeline.compute_view()
        metrics = pipeline.metrics(BUDGET)
        return {
            "total_count": view.summary.total_count,
            "visible_count": view.summary.visible_count,
            "total_cost": format_currency(view.summary.total_cost, raw=True),
            "metric_total_cost": format_currency(metrics.total_cost, raw=True),
            "metric_remaining": format_currency(abs(metrics.remaining), raw=True),
            "metric_percentage": f"{metrics.percentage:.1f}",
            "metric_status": metrics.status,
        }

    PAGE_TEMPLATE = """
<!doctype html>
<html lang=\"en\">
<head>
  <meta charset=\"utf-8\">
  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">
  <title>Budget Planner</title>
  <link href=\"https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css\" rel=\"stylesheet\">
  <style>
    body { padding-top: 2rem; }
    th[data-sort] button { all: unset; cursor: pointer; }
    th.sort-asc button::after { content: \" \\25B2\"; }
    th.sort-desc button::after { content: \" \\25BC\"; }
    tr.row-editing { background: #fffbea; }
    td.cell-saving { background: #fff3cd; }
    td.cell-saved { background: #d1e7dd; }
    td.cell-error { background: #f8d7da; }
    .status-good { color: #0a7d2a; }
    .status-warning { color: #b36b00; }
    .status-danger { color: #b00020; }
    .progress-bar.status-good { background: #0a7d2a; }
    .progress-bar.status-warning { background: #e0a800; }
    .progress-bar.status-danger { background: #b00020; }
  </style>
</head>
<body>
<div class=\"container\">
  <div class=\"d-flex flex-wrap justify-content-between align-items-start mb-3 gap-2\">
    <div>
      <h1 class=\"mb-1\">Budget Planner</h1>
      <div class=\"text-muted\">Line items, costs and notes in one table.</div>
    </div>
    <div class=\"d-flex gap-2\">
      <form method=\"post\" action=\"{{ url_for('items_new', **filter_args) }}\">
        <button id=\"addItemBtn\" class=\"btn btn-primary\" type=\"submit\">+ Add item</button>
      </form>
      <form method=\"post\" action=\"{{ url_for('reload', **filter_args) }}\">
        <button class=\"btn btn-outline-secondary\" type=\"submit\">Refresh</button>
      </form>
    </div>
  </div>

  <main>
  {% with messages = get_flashed_messages(with_categories=true) %}
    {% for level, message in messages %}
      <div class=\"alert alert-{{ 'danger' if level == 'error' else ('success' if level == 'success' else 'info') }} {{ level }}-banner\" data-autodismiss=\"{{ 5000 if level == 'error' else 3000 }}\">{{ message }}</div>
    {% endfor %}
  {% endwith %}
  <div id=\"ajaxBanner\"></div>

  <div class=\"row g-3 mb-3\">
    <div class=\"col-6 col-lg-3\"><div class=\"card shadow-sm h-100\"><div class=\"card-body\">
      <div class=\"text-muted small\">Total cost</div>
      <div class=\"fs-4 fw-semibold\">$<span id=\"metricTotalCost\">{{ money(metrics.total_cost, true) }}</span></div>
    </div></div></div>
    <div class=\"col-6 col-lg-3\"><div class=\"card shadow-sm h-100\"><div class=\"card-body\">
      <div class=\"text-muted small\">Budget</div>
      <div class=\"fs-4 fw-semibold\">$<span id=\"metricBudget\">{{ money(metrics.budget, true) }}</span></div>
    </div></div></div>
    <div class=\"col-6 col-lg-3\"><div class=\"card shadow-sm h-100\"><div class=\"card-body\">
      <div class=\"text-muted small\">Remaining</div>
      <div class=\"fs-4 fw-semibold status-{{ metrics.status }}\" id=\"metricRemaining\">{{ '-' if metrics.remaining < 0 else '' }}${{ money(metrics.remaining|abs, true) }}</div>
    </div></div></div>
    <div class=\"col-6 col-lg-3\"><div class=\"card shadow-sm h-100\"><div class=\"card-body\">
      <div class=\"text-muted small\">Used</div>
      <div class=\"fs-4 fw-semibold status-{{ metrics.status }}\" id=\"metricPercentage\">{{ '%.1f'|format(metrics.percentage) }}%</div>
      <div class=\"progress\" style=\"height: 8px;\">
        <div id=\"metricProgressBar\" class=\"progress-bar status-{{ metrics.status }}\" role=\"progressbar\" style=\"width: {{ metrics.progress }}%;\"></div>
      </div>
    </div></div></div>
  </div>

  <form class=\"row g-2 align-items-center mb-3\" method=\"get\" action=\"{{ url_for('index') }}\">
    <div class=\"col-12 col-md-5\">
      <input id=\"searchInput\" class=\"form-control\" type=\"search\" name=\"search\" value=\"{{ filters.search_term }}\" placeholder=\"Search item or category\">
    </div>
    <div class=\"col-8 col-md-4\">
      <select id=\"categoryFilter\" class=\"form-select\" name=\"category\">
        <option value=\"\">All Categories</option>
        {% for cat in categories %}
          <option value=\"{{ cat }}\" {% if filters.category == cat %}selected{% endif %}>{{ cat }}</option>
        {% endfor %}
      </select>
    </div>
    <div class=\"col-4 col-md-2 form-check\">
      <input id=\"requiredFilter\" class=\"form-check-input\" type=\"checkbox\" name=\"required\" value=\"1\" {% if filters.required_only %}checked{% endif %}>
      <label class=\"form-check-label\" for=\"requiredFilter\">Required only</label>
    </div>
    <div class=\"col-auto\"><button class=\"btn btn-outline-secondary\" type=\"submit\">Filter</button></div>
  </form>
  <datalist id=\"categoryList\">
    {% for cat in categories %}<option value=\"{{ cat }}\">{% endfor %}
  </datalist>

  <div class=\"text-muted small mb-2\">
    Showing <span id=\"visibleCount\">{{ view.summary.visible_count }}</span> of <span id=\"totalCount\">{{ view.summary.total_count }}</span> items.
    Overall: $<span id=\"totalCost\">{{ money(view.summary.total_cost, true) }}</span>
  </div>

  <div class=\"table-responsive\">
    <table id=\"dataTable\" class=\"table table-sm align-middle\">
      <thead><tr>
        {% for field, label in sort_columns %}
          <th data-sort=\"{{ field }}\" class=\"{% if sort.field == field %}{{ 'sort-asc' if sort.ascending else 'sort-desc' }}{% endif %}\">
            <form method=\"post\" action=\"{{ url_for('sort', field=field, **filter_args) }}\"><button type=\"submit\">{{ label }}</button></form>
          </th>
        {% endfor %}
        <th></th>
      </tr></thead>
      <tbody>
      {% for row in view.rows %}
        {% if row.key == editing_key %}
        <tr class=\"row-editing\" data-item-id=\"{{ row.key }}\" data-save-url=\"{{ url_for('items_field', key=row.key) }}\">
          <td>{{ row.id_label }}</td>
          <td><input class=\"form-control form-control-sm inline-edit-input\" data-field=\"category\" list=\"categoryList\" value=\"{{ row.item.category or '' }}\" data-last=\"{{ row.item.category or '' }}\"></td>
          <td><input class=\"form-control form-control-sm inline-edit-input\" data-field=\"item\" value=\"{{ row.item.item or '' }}\" data-last=\"{{ row.item.item or '' }}\"></td>
          <td>
            <select class=\"form-select form-select-sm inline-edit-select\" data-field=\"required\" data-last=\"{{ row.item.required or 'No' }}\">
              {% for opt in required_choices %}
                <option value=\"{{ opt }}\" {% if (row.item.required or 'No') == opt %}selected{% endif %}>{{ opt }}</option>
              {% endfor %}
            </select>
          </td>
          <td><input class=\"form-control form-control-sm inline-edit-input\" type=\"number\" step=\"0.01\" min=\"0\" data-field=\"unitCost\" value=\"{{ row.item.unit_cost if row.item.unit_cost is not none else '' }}\" data-last=\"{{ row.item.unit_cost if row.item.unit_cost is not none else '' }}\"></td>
          <td><input class=\"form-control form-control-sm inline-edit-input\" type=\"number\" step=\"0.01\" min=\"0\" data-field=\"quantity\" value=\"{{ row.item.quantity if row.item.quantity is not none else '' }}\" data-last=\"{{ row.item.quantity if row.item.quantity is not none else '' }}\"></td>
          <td class=\"subtotal-cell\">{{ row.subtotal_label }}</td>
          <td class=\"text-nowrap\">
            <form class=\"d-inline\" method=\"post\" action=\"{{ url_for('items_done', key=row.key, **filter_args) }}\">
              <button class=\"btn btn-sm btn-success\" type=\"submit\" aria-label=\"Exit edit mode\">&#10003; Done</button>
            </form>
            <form class=\"d-inline cancel-form\" method=\"post\" action=\"{{ url_for('items_cancel', key=row.key, **filter_args) }}\"></form>
            <form class=\"d-inline\" method=\"post\" action=\"{{ url_for('items_delete', key=row.key, **filter_args) }}\" {% if not row.item.is_pending %}onsubmit=\"return confirm('Are you sure you want to delete this item? This action cannot be undone.');\"{% endif %}>
              <button class=\"btn btn-sm btn-outline-danger\" type=\"submit\">Delete</button>
            </form>
          </td>
        </tr>
        {% else %}
        <tr data-item-id=\"{{ row.key }}\">
          <td>{{ row.id_label }}</td>
          <td>{{ row.item.category or '' }}</td>
          <td>
            {% if row.item.is_pending %}{{ row.item.item or '' }}
            {% else %}<a href=\"{{ url_for('item_detail', id=row.key) }}\">{{ row.item.item or '' }}</a>{% endif %}
          </td>
          <td>{{ row.item.required or '' }}</td>
          <td>{{ row.unit_cost_label }}</td>
          <td>{{ row.quantity_label }}</td>
          <td>{{ row.subtotal_label }}</td>
          <td class=\"text-nowrap\">
            <form class=\"d-inline\" method=\"post\" action=\"{{ url_for('items_edit', key=row.key, **filter_args) }}\">
              <button class=\"btn btn-sm btn-outline-primary\" type=\"submit\" aria-label=\"Edit item\">&#9998; Edit</button>
            </form>
            <form class=\"d-inline\" method=\"post\" action=\"{{ url_for('items_delete', key=row.key, **filter_args) }}\" {% if not row.item.is_pending %}onsubmit=\"return confirm('Are you sure you want to delete this item? This action cannot be undone.');\"{% endif %}>
              <button class=\"btn btn-sm btn-outline-danger\" type=\"submit\">Delete</button>
            </form>
          </td>
        </tr>
        {% endif %}
      {% else %}
        <tr><td colspan=\"8\" class=\"text-center text-muted py-4\">No items found matching your filters.</td></tr>
      {% endfor %}
      </tbody>
    </table>
  </div>
  </main>
</div>
<script>
(() => {
  document.querySelectorAll('[data-autodismiss]').forEach(el => {
    setTimeout(() => el.remove(), parseInt(el.dataset.autodismiss, 10));
  });

  function banner(message, level) {
    const holder = document.getElementById('ajaxBanner');
    const div = document.createElement('div');
    div.className = `alert alert-${level === 'error' ? 'danger' : 'success'}`;
    div.textContent = message;
    holder.replaceChildren(div);
    setTimeout(() => div.remove(), level === 'error' ? 5000 : 3000);
  }

  function mark(cell, state) {
    cell.classList.remove('cell-saving', 'cell-saved', 'cell-error');
    cell.classList.add(state);
    if (state !== 'cell-saving') setTimeout(() => cell.classList.remove(state), state === 'cell-error' ? 3000 : 2000);
  }

  const row = document.querySelector('tr.row-editing');
  if (!row) return;

  async function save(input) {
    const field = input.dataset.field;
    const value = input.value.trim();
    if (value === (input.dataset.last || '')) return;
    const cell = input.parentElement;
    mark(cell, 'cell-saving');
    let data;
    try {
      const resp = await fetch(row.dataset.saveUrl, {
        method: 'POST',
        headers: {'Content-Type': 'application/json'},
        body: JSON.stringify({field, value}),
      });
      data = await resp.json();
    } catch (err) {
      console.error('Unexpected error:', err);
      data = {status: 'failed', value: input.dataset.last, message: 'An unexpected error occurred. Please try again.'};
    }
    if (data.status === 'failed') {
      input.value = data.value === null || data.value === undefined ? '' : data.value;
      mark(cell, 'cell-error');
      if (data.message) banner(data.message, 'error');
      return;
    }
    input.dataset.last = input.value;
    mark(cell, 'cell-saved');
    if (data.status === 'created') { window.location.reload(); return; }
    if (data.summary) {
      for (const [id, key] of [['totalCount', 'total_count'], ['visibleCount', 'visible_count'], ['totalCost', 'total_cost'], ['metricTotalCost', 'metric_total_cost']]) {
        document.getElementById(id).textContent = data.summary[key];
      }
      document.getElementById('metricPercentage').textContent = `${data.summary.metric_percentage}%`;
    }
    if (data.subtotal !== undefined) row.querySelector('.subtotal-cell').textContent = data.subtotal;
  }

  row.querySelectorAll('[data-field]').forEach(input => {
    input.addEventListener('blur', () => save(input));
    if (input.tagName === 'SELECT') input.addEventListener('change', () => save(input));
    input.addEventListener('keydown', (e) => {
      if (e.key === 'Escape') row.querySelector('.cancel-form').submit();
      else if (e.key === 'Enter' && input.tagName !== 'SELECT') input.blur();
    });
  });
  const first = row.querySelector('[data-field=\"category\"]');
  if (first && row.dataset.itemId === 'new') first.focus();
})();
</script>
</body>
</html>
"""

    PAGE_DETAIL = """
<!doctype html>
<html lang=\"en\">
<head>
  <meta charset=\"utf-8\">
  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">
  <title>{{ (item.item if item else None) or 'Item Details' }}</title>
  <link href=\"https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css\" rel=\"stylesheet\">
  <style>
    body { padding-top: 2rem; }
    #markdownContent img { max-width: 100%; }
  </style>
</head>
<body>
<div class=\"container\">
  <header class=\"mb-3\">
    <a href=\"{{ url_for('index') }}\">&larr; Back to budget</a>
    <h1 class=\"mt-2\">{{ (item.item if item else None) or 'Item Details' }}</h1>
  </header>
  <main>
  {% with messages = get_flashed_messages(with_categories=true) %}
    {% for level, message in messages %}
      <div class=\"alert alert-{{ 'danger' if level == 'error' else 'success' }}\" data-autodismiss=\"{{ 5000 if level == 'error' else 3000 }}\">{{ message }}</div>
    {% endfor %}
  {% endwith %}
  {% if not item %}
    <p>Item not found.</p>
  {% else %}
    <dl class=\"row\">
      <dt class=\"col-sm-3\">Category</dt><dd class=\"col-sm-9\" id=\"category\">{{ item.category or '' }}</dd>
      <dt class=\"col-sm-3\">Required</dt><dd class=\"col-sm-9\" id=\"required\">{{ item.required or '' }}</dd>
      <dt class=\"col-sm-3\">Notes</dt><dd class=\"col-sm-9\" id=\"notes\">{{ item.notes or '' }}</dd>
      <dt class=\"col-sm-3\">Unit cost</dt><dd class=\"col-sm-9\" id=\"unitCost\">{{ money(item.unit_cost) }}</dd>
      <dt class=\"col-sm-3\">Quantity</dt><dd class=\"col-sm-9\" id=\"quantity\">{{ item.quantity if item.quantity is not none else '' }}</dd>
      <dt class=\"col-sm-3\">Subtotal</dt><dd class=\"col-sm-9\" id=\"subTotal\">{{ money(item.sub_total) }}</dd>
    </dl>
    <div class=\"card shadow-sm\">
      <div class=\"card-body\">
        {% if editing %}
          <form method=\"post\" action=\"{{ url_for('item_markdown', item_id=item.id.value) }}\">
            <div class=\"row g-3\">
              <div class=\"col-12 col-lg-6\">
                <textarea id=\"markdownInput\" class=\"form-control font-monospace\" name=\"md_content\" rows=\"18\">{{ item.md_content or '' }}</textarea>
              </div>
              <div class=\"col-12 col-lg-6\">
                <div id=\"markdownPreview\" class=\"border rounded p-2 h-100\">{{ content_html }}</div>
              </div>
            </div>
            <div class=\"d-flex justify-content-end gap-2 mt-3\">
              <a class=\"btn btn-outline-secondary\" href=\"{{ url_for('item_detail', id=item.id.value) }}\">Cancel</a>
              <button class=\"btn btn-primary\" type=\"submit\">Save</button>
            </div>
          </form>
        {% else %}
          <div class=\"d-flex justify-content-end\">
            <a class=\"btn btn-sm btn-outline-primary\" href=\"{{ url_for('item_detail', id=item.id.value, edit=1) }}\">&#9998; Edit notes</a>
          </div>
          <div id=\"markdownContent\">{{ content_html }}</div>
        {% endif %}
      </div>
    </div>
  {% endif %}
  </main>
</div>
<script>
(() => {
  document.querySelectorAll('[data-autodismiss]').forEach(el => {
    setTimeout(() => el.remove(), parseInt(el.dataset.autodismiss, 10));
  });
  const input = document.getElementById('markdownInput');
  if (!input) return;
  const preview = document.getElementById('markdownPreview');
  let timer = null;
  input.addEventListener('input', () => {
    clearTimeout(timer);
    timer = setTimeout(async () => {
      const body = new URLSearchParams({text: input.value});
      const resp = await fetch('{{ url_for('preview') }}', {method: 'POST', body});
      if (resp.ok) preview.innerHTML = await resp.text();
    }, 300);
  });
})();
</script>
</body>
</html>
"""

    @app.get("/")
    def index():
        _ensure_loaded()
        args = _filter_args()
        pipeline.set_filter(
            search_term=args.get("search", ""),
            category=args.get("category", ""),
            required_only=args.get("required") == "1",
        )
        view = pipeline.compute_view()
        editing_row = editor.editing_row
        return render_template_string(
            PAGE_TEMPLATE,
            view=view,
            filters=pipeline.filter_state,
            filter_args=args,
            sort=pipeline.sort_state,
            sort_columns=SORT_COLUMNS,
            categories=pipeline.categories(),
            metrics=pipeline.metrics(BUDGET),
            editing_key=editing_row.key if editing_row is not None else None,
            required_choices=REQUIRED_CHOICES,
            money=format_currency,
        )

    @app.post("/reload")
    def reload():
        for notice in editor.reload():
            _flash_notice(notice)
        loaded["done"] = True
        return _back_to_index()

    @app.post("/sort/<field>")
    def sort(field: str):
        _ensure_loaded()
        try:
            pipeline.activate_sort(field)
        except ValueError:
            flash(f"Cannot sort by {field}.", "error")
        return _back_to_index()

    @app.post("/items/new")
    def items_new():
        _ensure_loaded()
        _flash_notice(editor.add_row())
        return _back_to_index()

    @app.post("/items/<key>/edit")
    def items_edit(key: str):
        _ensure_loaded()
        item_id = _row_key_or_none(key)
        try:
            if item_id is None:
                raise KeyError(key)
            editor.begin_edit(item_id)
        except KeyError:
            flash("Item not found.", "error")
        return _back_to_index()

    @app.post("/items/<key>/done")
    def items_done(key: str):
        editor.done()
        return _back_to_index()

    @app.post("/items/<key>/cancel")
    def items_cancel(key: str):
        editor.cancel()
        return _back_to_index()

    @app.post("/items/<key>/delete")
    def items_delete(key: str):
        _ensure_loaded()
        item_id = _row_key_or_none(key)
        if item_id is None:
            flash("Item not found.", "error")
        else:
            _flash_notice(editor.delete(item_id))
        return _back_to_index()

    @app.post("/items/<key>/field")
    def items_field(key: str):
        item_id = _row_key_or_none(key)
        payload = request.get_json(silent=True) or request.form
        field = (payload.get("field") or "").strip()
        if item_id is None or not field:
            return jsonify({"status": "failed", "message": "Malformed field update."}), 400
        try:
            outcome = editor.blur(item_id, field, payload.get("value"))
        except EditStateError as exc:
            logger.info("Rejected field update: %s", exc)
            return jsonify({"status": "failed", "message": str(exc), "value": None}), 409
        body = {
            "status": outcome.status,
            "field": outcome.field,
            "value": outcome.value,
            "item": _item_payload(outcome.item),
            "summary": _summary_payload(),
        }
        if outcome.item is not None:
            body["subtotal"] = format_currency(computed_subtotal(outcome.item))
        if outcome.notice is not None:
            body["message"] = outcome.notice.message
        return jsonify(body)

    @app.get("/item")
    def item_detail():
        _ensure_loaded()
        raw_id = (request.args.get("id") or "").strip()
        item = None
        if raw_id.isdigit():
            item = pipeline.find(Persisted(int(raw_id)))
        if item is None:
            return render_template_string(PAGE_DETAIL, item=None, editing=False, money=format_currency), 404
        return render_template_string(
            PAGE_DETAIL,
            item=item,
            editing=request.args.get("edit") == "1",
            content_html=render_detail_html(item.md_content, item.html),
            money=format_currency,
        )

    @app.post("/item/<int:item_id>/markdown")
    def item_markdown(item_id: int):
        _ensure_loaded()
        outcome = editor.save_detail_field(Persisted(item_id), "mdContent", request.form.get("md_content", ""))
        if outcome.status == "failed":
            _flash_notice(outcome.notice)
            return redirect(url_for("item_detail", id=item_id, edit=1))
        flash("Notes saved." if outcome.status == "saved" else "No changes to save.", "success")
        return redirect(url_for("item_detail", id=item_id))

    @app.post("/preview")
    def preview():
        source = request.form.get("text")
        if source is None:
            source = (request.get_json(silent=True) or {}).get("text", "")
        return str(render_markdown(source)), 200, {"Content-Type": "text/html; charset=utf-8"}

    # Expose collaborators for tests
    app.config["_ENGINE"] = engine
    app.config["_REPOSITORY"] = repository
    app.config["_PIPELINE"] = pipeline
    app.config["_EDITOR"] = editor
    app.config["_TABLE_ITEMS"] = repository.table

    return app


# -----------------------------
# Dev server with safe port binding (debugger & reloader disabled)
# -----------------------------

def _find_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Budget planner web application.")
    parser.add_argument(
        "--database",
        help="SQLAlchemy database URL to use (defaults to BUDGET_DATABASE_URL or the local sqlite file).",
    )
    parser.add_argument(
        "--host",
        help="Host interface for the development server. Defaults to HOST env var or 127.0.0.1.",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port for the development server. Defaults to PORT env var or an ephemeral port.",
    )
    parser.add_argument(
        "--budget",
        type=float,
        help="Total budget shown in the metric cards. Defaults to BUDGET_TOTAL or 40000.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = AppConfig.from_env().with_overrides(
        database_url=args.database,
        host=args.host,
        port=args.port,
        budget=args.budget,
    )
    app = create_app(config=settings)

    port = settings.port if settings.port is not None else _find_free_port()
    try:
        print(f"Starting server on http://{settings.host}:{port}")
        app.run(host=settings.host, port=port, debug=False, use_reloader=False, threaded=False)
    except SystemExit:
        print(
            "\n[!] Server failed to start (SystemExit). This environment may block sockets or the port is unavailable."
        )
        print("    - Try setting a custom port: PORT=5000 python budget_web_app.py")
        print("    - Or run the test suite: python -m unittest -v")
        sys.exit(0)


if __name__ == "__main__":
    main()
