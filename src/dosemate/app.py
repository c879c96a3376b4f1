"""App Kivy: calculadora de dosis, tabla personalizada e historial cifrado."""

from __future__ import annotations

import traceback
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from dateutil import tz

from dosemate.calculator import (
    DEFAULT_CARB_RATIO,
    alert_lines,
    build_history_entry,
    compute,
    dose_level,
    format_display,
    moment_label,
)
from dosemate.dose_table import active_table, format_range, reset_table, set_dose
from dosemate.export import write_history
from dosemate.model import DoseResult, FoodItem, HistoryEntry, MomentKey
from dosemate.parsing import parse_number_input
from dosemate.repository import HistoryRepository
from dosemate.storage import SQLiteStore
from dosemate.summary import history_stats, seven_day_summary
from dosemate.validation import can_calculate_dose

_LOCAL_TZ = tz.tzlocal()

_LEVEL_COLORS: dict[str, tuple[float, float, float, float]] = {
    "safe": (0.13, 0.77, 0.37, 1),
    "caution": (0.92, 0.70, 0.03, 1),
    "danger": (0.94, 0.27, 0.27, 1),
}


def run_app() -> int:
    """Lanza la app Kivy."""
    from kivy.app import App
    from kivy.clock import Clock
    from kivy.core.window import Window
    from kivy.uix.boxlayout import BoxLayout
    from kivy.uix.button import Button
    from kivy.uix.checkbox import CheckBox
    from kivy.uix.gridlayout import GridLayout
    from kivy.uix.label import Label
    from kivy.uix.popup import Popup
    from kivy.uix.scrollview import ScrollView
    from kivy.uix.tabbedpanel import TabbedPanel, TabbedPanelItem
    from kivy.uix.textinput import TextInput

    class DoseMateApp(App):
        """Main Kivy app."""

        def __init__(self, **kwargs: object) -> None:
            super().__init__(**kwargs)
            self.store = SQLiteStore(Path.home() / ".dosemate" / "dosemate.sqlite3")
            self.repository: HistoryRepository = self.store
            self.app_config = self.store.load_config()
            self.history: list[HistoryEntry] = []
            self.food_rows: list[tuple[TextInput, TextInput]] = []
            self.result: DoseResult | None = None
            self._unsubscribe = None
            self.glycemia: TextInput | None = None
            self.ratio: TextInput | None = None
            self.extra: CheckBox | None = None
            self.food_grid: GridLayout | None = None
            self.result_label: Label | None = None
            self.history_view: TextInput | None = None
            self.status: Label | None = None

        def build(self) -> TabbedPanel:
            Window.bind(on_key_down=self._on_key_down)
            panel = TabbedPanel(do_default_tab=False)

            calc_tab = TabbedPanelItem(text="Calcul")
            calc_tab.add_widget(self._build_calculator())
            panel.add_widget(calc_tab)

            history_tab = TabbedPanelItem(text="Historique")
            history_tab.add_widget(self._build_history())
            panel.add_widget(history_tab)

            self._unsubscribe = self.repository.subscribe(self._on_history)
            Clock.schedule_once(lambda *_args: self._recalculate(), 0)
            return panel

        def on_stop(self) -> None:
            if self._unsubscribe is not None:
                self._unsubscribe()

        def _build_calculator(self) -> BoxLayout:
            root = BoxLayout(orientation="vertical", spacing=8, padding=10)

            form = GridLayout(cols=2, spacing=6, size_hint_y=None, height=120)
            form.add_widget(Label(text="Glycémie (mg/dL)"))
            self.glycemia = TextInput(multiline=False, input_filter=None)
            form.add_widget(self.glycemia)
            form.add_widget(Label(text="Ratio (g/U)"))
            self.ratio = TextInput(
                text=f"{self.app_config.carb_ratio:g}", multiline=False
            )
            form.add_widget(self.ratio)
            form.add_widget(Label(text="Forcer moment extra"))
            self.extra = CheckBox(active=False)
            form.add_widget(self.extra)
            root.add_widget(form)

            self.glycemia.bind(text=lambda *_args: self._recalculate())
            self.ratio.bind(text=lambda *_args: self._on_ratio_changed())
            self.extra.bind(active=lambda *_args: self._recalculate())

            self.food_grid = GridLayout(cols=3, spacing=4, size_hint_y=None)
            self.food_grid.bind(minimum_height=self.food_grid.setter("height"))
            scroll = ScrollView(size_hint_y=0.35)
            scroll.add_widget(self.food_grid)
            root.add_widget(scroll)

            actions = BoxLayout(orientation="horizontal", spacing=8, size_hint_y=None,
                                height=40)
            add_btn = Button(text="Ajouter aliment")
            table_btn = Button(text="Tableau")
            save_btn = Button(text="Enregistrer")
            add_btn.bind(on_press=lambda *_args: self._add_food_row())
            table_btn.bind(on_press=self._open_table_popup)
            save_btn.bind(on_press=self._on_save)
            actions.add_widget(add_btn)
            actions.add_widget(table_btn)
            actions.add_widget(save_btn)
            root.add_widget(actions)

            self.result_label = Label(text="", markup=False, halign="center")
            root.add_widget(self.result_label)

            self.status = Label(text="", size_hint_y=None, height=30)
            root.add_widget(self.status)
            return root

        def _build_history(self) -> BoxLayout:
            root = BoxLayout(orientation="vertical", spacing=8, padding=10)
            actions = BoxLayout(orientation="horizontal", spacing=8, size_hint_y=None,
                                height=40)
            for fmt in ("csv", "xlsx", "json"):
                btn = Button(text=fmt.upper())
                btn.bind(on_press=lambda _btn, f=fmt: self._on_export(f))
                actions.add_widget(btn)
            clear_btn = Button(text="Effacer")
            clear_btn.bind(on_press=lambda *_args: self.repository.clear())
            actions.add_widget(clear_btn)
            root.add_widget(actions)

            self.history_view = TextInput(readonly=True, text="", do_wrap=False)
            root.add_widget(self.history_view)
            return root

        def _on_key_down(
            self,
            _window: object,
            keycode: int,
            _scancode: int,
            _text: str,
            _modifiers: list[str],
        ) -> bool:
            # Esc / botón atrás de Android: confirmar antes de salir.
            if keycode != 27:
                return False
            self._confirm_exit()
            return True

        def _confirm_exit(self) -> None:
            buttons = BoxLayout(orientation="horizontal", spacing=8)
            stay_btn = Button(text="Annuler")
            quit_btn = Button(text="Quitter")
            buttons.add_widget(stay_btn)
            buttons.add_widget(quit_btn)
            popup = Popup(title="Quitter DoseMate ?", content=buttons,
                          size_hint=(0.6, 0.3))
            stay_btn.bind(on_press=lambda *_args: popup.dismiss())
            quit_btn.bind(on_press=lambda *_args: self.stop())
            popup.open()

        def _add_food_row(self) -> None:
            if self.food_grid is None:
                return
            carbs = TextInput(hint_text="Glucides /100g", multiline=False,
                              size_hint_y=None, height=36)
            weight = TextInput(hint_text="Poids (g)", multiline=False,
                               size_hint_y=None, height=36)
            remove_btn = Button(text="X", size_hint=(0.2, None), height=36)
            pair = (carbs, weight)

            def remove(*_args: object) -> None:
                if self.food_grid is None:
                    return
                for widget in (carbs, weight, remove_btn):
                    self.food_grid.remove_widget(widget)
                self.food_rows.remove(pair)
                self._recalculate()

            remove_btn.bind(on_press=remove)
            carbs.bind(text=lambda *_args: self._recalculate())
            weight.bind(text=lambda *_args: self._recalculate())
            self.food_grid.add_widget(carbs)
            self.food_grid.add_widget(weight)
            self.food_grid.add_widget(remove_btn)
            self.food_rows.append(pair)

        def _current_food_items(self) -> list[FoodItem]:
            return food_items_from_rows(
                [(carbs.text, weight.text) for carbs, weight in self.food_rows]
            )

        def _current_ratio(self) -> float:
            text = self.ratio.text if self.ratio is not None else ""
            return ratio_from_text(text, self.app_config.carb_ratio)

        def _on_ratio_changed(self) -> None:
            value = parse_number_input(self.ratio.text if self.ratio else "")
            if value is not None and value > 0 and value != self.app_config.carb_ratio:
                self.app_config = replace(self.app_config, carb_ratio=value)
                self.store.save_config(self.app_config)
            self._recalculate()

        def _recalculate(self) -> None:
            if self.glycemia is None or self.result_label is None:
                return
            table = active_table(
                self.app_config.use_custom_table, self.app_config.custom_table
            )
            self.result = compute(
                self.glycemia.text,
                self._current_food_items(),
                self._current_ratio(),
                table,
                bool(self.extra.active) if self.extra is not None else False,
                datetime.now(tz=_LOCAL_TZ),
                language=self.app_config.language,
            )
            self.result_label.text = "\n".join(
                result_lines(self.result, self.app_config.language)
            )
            self.result_label.color = _LEVEL_COLORS[
                dose_level(self.result.total_administered)
            ]

        def _on_save(self, _: object) -> None:
            if self.glycemia is None or self.result is None:
                return
            lang = self.app_config.language
            report = can_calculate_dose(
                self.glycemia.text,
                self._current_food_items(),
                self._current_ratio(),
                lang,
            )
            if not report.valid:
                self._set_status(" / ".join(report.errors))
                return
            entry = build_history_entry(
                self.result, self.glycemia.text, datetime.now(tz=_LOCAL_TZ),
                language=lang,
            )
            try:
                self.repository.append(entry)
            except Exception as exc:
                self._show_error("enregistrer", exc)
                return
            self._set_status(f"Dose enregistrée : {entry.display}")

        def _on_history(self, entries: list[HistoryEntry]) -> None:
            self.history = entries
            if self.history_view is not None:
                self.history_view.text = history_preview(
                    entries, datetime.now(tz=_LOCAL_TZ), self.app_config.language
                )

        def _on_export(self, fmt: str) -> None:
            out_dir = (
                Path(self.app_config.export_dir).expanduser()
                if self.app_config.export_dir
                else Path.cwd() / "salidas"
            )
            stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            try:
                out_path = write_history(self.history, out_dir, fmt, stamp)
            except Exception as exc:
                self._show_error("exporter", exc)
                return
            self._set_status(f"Export : {out_path}")

        def _open_table_popup(self, _: object) -> None:
            config = self.app_config
            working = list(config.custom_table) or reset_table()
            inputs: dict[tuple[int, MomentKey], TextInput] = {}

            grid = GridLayout(cols=5, spacing=4, size_hint_y=None)
            grid.bind(minimum_height=grid.setter("height"))
            grid.add_widget(Label(text="mg/dL", size_hint_y=None, height=30))
            for moment in MomentKey:
                grid.add_widget(Label(text=moment_label(moment, config.language),
                                      size_hint_y=None, height=30))
            for idx, row in enumerate(working):
                grid.add_widget(Label(text=format_range(row),
                                      size_hint_y=None, height=32))
                for moment in MomentKey:
                    inp = TextInput(text=f"{row.dose_for(moment):g}", multiline=False,
                                    size_hint_y=None, height=32)
                    inputs[(idx, moment)] = inp
                    grid.add_widget(inp)
            scroll = ScrollView()
            scroll.add_widget(grid)

            toggle_row = BoxLayout(orientation="horizontal", size_hint_y=None, height=36)
            toggle = CheckBox(active=config.use_custom_table, size_hint_x=0.2)
            toggle_row.add_widget(toggle)
            toggle_row.add_widget(Label(text="Utiliser le tableau personnalisé"))

            footer = BoxLayout(orientation="horizontal", size_hint_y=None, height=42)
            reset_btn = Button(text="Reset")
            cancel_btn = Button(text="Annuler")
            save_btn = Button(text="Enregistrer")
            footer.add_widget(reset_btn)
            footer.add_widget(cancel_btn)
            footer.add_widget(save_btn)

            content = BoxLayout(orientation="vertical")
            content.add_widget(toggle_row)
            content.add_widget(scroll)
            content.add_widget(footer)
            popup = Popup(title="Tableau d'insuline", content=content,
                          size_hint=(0.95, 0.95))

            def apply(*_args: object) -> None:
                table = working
                for (idx, moment), inp in inputs.items():
                    table = set_dose(table, idx, moment, inp.text)
                self.app_config = replace(
                    self.app_config,
                    custom_table=table,
                    use_custom_table=bool(toggle.active),
                )
                self.store.save_config(self.app_config)
                popup.dismiss()
                self._set_status("Tableau enregistré")
                self._recalculate()

            def reset(*_args: object) -> None:
                for (idx, moment), inp in inputs.items():
                    inp.text = f"{reset_table()[idx].dose_for(moment):g}"

            reset_btn.bind(on_press=reset)
            cancel_btn.bind(on_press=lambda *_args: popup.dismiss())
            save_btn.bind(on_press=apply)
            popup.open()

        def _set_status(self, text: str) -> None:
            if self.status is not None:
                self.status.text = text

        def _show_error(self, action: str, exc: Exception) -> None:
            error_type = type(exc).__name__
            self._set_status(f"Erreur ({action}, {error_type}): {exc}")
            if self.history_view is not None:
                self.history_view.text = traceback.format_exc()

    DoseMateApp().run()
    return 0


def food_items_from_rows(rows: Sequence[tuple[str, str]]) -> list[FoodItem]:
    """Build food items from (carbs per 100 g, weight) text pairs."""
    return [
        FoodItem(carbs_per_100=carbs, weight=weight, id=str(idx))
        for idx, (carbs, weight) in enumerate(rows)
    ]


def ratio_from_text(text: str, fallback: float | None = None) -> float:
    """Ratio typed by the user; the saved one (or 10) when the text is unusable."""
    value = parse_number_input(text)
    if value is not None:
        return value
    return fallback if fallback is not None else DEFAULT_CARB_RATIO


def result_lines(result: DoseResult, language: str = "fr") -> list[str]:
    """Lines shown in the result card."""
    lines = [
        f"{moment_label(result.moment, language)}",
        f"Base : {_dash(result.base)} U   Repas : {_dash(result.meal)} U",
        f"Total : {result.total_administered} U",
        format_display(result, language),
    ]
    lines.extend(alert_lines(result, language))
    if result.note:
        lines.append(result.note)
    return lines


def history_preview(
    entries: Sequence[HistoryEntry], now: datetime, language: str = "fr"
) -> str:
    """Texto del historial: cabecera con estadísticas y una línea por dosis."""
    if not entries:
        return "Aucune dose enregistrée"
    stats = history_stats(entries)
    week = seven_day_summary(entries, now)
    header = [f"Entrées : {stats.total}   Moy. dose : {_dash(stats.avg_dose)}U"]
    if stats.avg_glycemia is not None:
        header.append(f"Moy. glycémie : {stats.avg_glycemia}")
    header.append(
        f"7 jours : {week.count} doses, moy. admin. {_dash(week.avg_dose_administered)}U"
    )
    body = [
        f"{_short_date(e.date_iso)}  {moment_label(e.moment, language):<8} {e.display}"
        for e in entries
    ]
    return "\n".join(header + [""] + body)


def _short_date(date_iso: str) -> str:
    try:
        return datetime.fromisoformat(date_iso).strftime("%d/%m/%Y %H:%M")
    except ValueError:
        return date_iso


def _dash(value: float | None) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return str(value)