"""
Visualization and Output Formatting Module

This module renders FIRST, FOLLOW and PREDICT sets as HTML tables for the
grammar analysis endpoints.
"""

from typing import Dict, List, Tuple, Set
from dataclasses import dataclass
import html

from cfg_parser import Production, EPSILON
from first_follow import GrammarAnalysis, sorted_symbols


@dataclass
class VisualizationConfig:
    """Configuration options for visualization output."""
    table_css_classes: str = "symbol-set-table"
    error_css_classes: str = "error-message"
    include_inline_styles: bool = False
    set_separator: str = ", "


class SetTableGenerator:
    """Generates HTML tables for FIRST/FOLLOW and PREDICT sets."""

    def __init__(self, config: VisualizationConfig = None):
        self.config = config or VisualizationConfig()

    def generate_first_follow_html(self, first: Dict[str, Set[str]],
                                   follow: Dict[str, Set[str]]) -> str:
        """
        Generate an HTML table with one row per nonterminal.

        Args:
            first: Nonterminal to FIRST set
            follow: Nonterminal to FOLLOW set

        Returns:
            HTML string containing the FIRST/FOLLOW table
        """
        if not first:
            return self._generate_empty_table_html("No nonterminals found")

        html_lines = []
        if self.config.include_inline_styles:
            html_lines.append(self._generate_table_styles())

        html_lines.append(f'<table class="grammar-table {self.config.table_css_classes}" role="table" aria-label="FIRST and FOLLOW sets">')
        html_lines.append('<thead>')
        html_lines.append('<tr>')
        html_lines.append('<th class="grammar-table-header grammar-table-header-primary" scope="col">Nonterminal</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">FIRST</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">FOLLOW</th>')
        html_lines.append('</tr>')
        html_lines.append('</thead>')
        html_lines.append('<tbody>')

        # Rows keep the grammar's nonterminal order
        for non_terminal in first:
            html_lines.append('<tr>')
            html_lines.append(f'<th class="grammar-table-cell grammar-table-cell-primary" scope="row">{html.escape(non_terminal)}</th>')
            html_lines.append(f'<td class="grammar-table-cell">{self._format_set(first[non_terminal])}</td>')
            html_lines.append(f'<td class="grammar-table-cell">{self._format_set(follow.get(non_terminal, set()))}</td>')
            html_lines.append('</tr>')

        html_lines.append('</tbody>')
        html_lines.append('</table>')

        return '\n'.join(html_lines)

    def generate_predict_html(self, predict: List[Tuple[Production, Set[str]]]) -> str:
        """Generate an HTML table with one row per alternative."""
        if not predict:
            return self._generate_empty_table_html("No productions found")

        html_lines = []
        html_lines.append(f'<table class="grammar-table {self.config.table_css_classes}" role="table" aria-label="PREDICT sets">')
        html_lines.append('<thead>')
        html_lines.append('<tr>')
        html_lines.append('<th class="grammar-table-header grammar-table-header-primary" scope="col">Production</th>')
        html_lines.append('<th class="grammar-table-header" scope="col">PREDICT</th>')
        html_lines.append('</tr>')
        html_lines.append('</thead>')
        html_lines.append('<tbody>')

        for production, predict_set in predict:
            html_lines.append('<tr>')
            html_lines.append(f'<th class="grammar-table-cell grammar-table-cell-primary" scope="row">{html.escape(str(production))}</th>')
            html_lines.append(f'<td class="grammar-table-cell">{self._format_set(predict_set)}</td>')
            html_lines.append('</tr>')

        html_lines.append('</tbody>')
        html_lines.append('</table>')

        return '\n'.join(html_lines)

    def generate_analysis_html(self, analysis: GrammarAnalysis) -> str:
        """FIRST/FOLLOW table followed by the PREDICT table."""
        return '\n'.join([
            self.generate_first_follow_html(analysis.first, analysis.follow),
            self.generate_predict_html(analysis.predict),
        ])

    def _format_set(self, symbols: Set[str]) -> str:
        """Format a set as '{ a, b, ε }' with the markers last."""
        if not symbols:
            return '&empty;'
        items = []
        for symbol in sorted_symbols(symbols):
            if symbol == EPSILON:
                items.append(f'<span class="grammar-epsilon">{html.escape(symbol)}</span>')
            else:
                items.append(html.escape(symbol))
        return '{ ' + self.config.set_separator.join(items) + ' }'

    def _generate_empty_table_html(self, message: str) -> str:
        """Generate HTML for an empty table with a message."""
        html_lines = []
        html_lines.append(f'<div class="{self.config.error_css_classes}">')
        html_lines.append(f'<p>{html.escape(message)}</p>')
        html_lines.append('</div>')
        return '\n'.join(html_lines)

    def _generate_table_styles(self) -> str:
        """Generate inline CSS styles for the table."""
        return f"""
<style>
.{self.config.table_css_classes} {{
    border-collapse: collapse;
    font-family: 'Courier New', monospace;
    font-size: 12px;
}}

.{self.config.table_css_classes} th, .{self.config.table_css_classes} td {{
    border: 1px solid #374151;
    padding: 8px 12px;
    text-align: left;
}}

.grammar-epsilon {{
    color: #a78bfa;
    font-style: italic;
}}
</style>"""
