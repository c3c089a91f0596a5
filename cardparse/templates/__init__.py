"""
Templates: compilation cache, built-in presets and YAML loading.
"""

from cardparse.templates.compiler import (
    CacheStatistics,
    CompilationCache,
    CompiledTemplate,
    TemplateCompiler,
    compile_pattern,
    relax_pattern,
    relaxed_template,
    template_hash,
)
from cardparse.templates.loader import load_templates, parse_templates
from cardparse.templates.presets import (
    H2_QA,
    H3_QA,
    PRESET_TEMPLATES,
    QA_PAIR,
    PresetMatch,
    PresetTemplate,
    get_preset,
    identify_template,
)

__all__ = [
    # Compiler
    "TemplateCompiler",
    "CompilationCache",
    "CompiledTemplate",
    "CacheStatistics",
    "compile_pattern",
    "relax_pattern",
    "relaxed_template",
    "template_hash",
    # Presets
    "PRESET_TEMPLATES",
    "H2_QA",
    "H3_QA",
    "QA_PAIR",
    "PresetTemplate",
    "PresetMatch",
    "get_preset",
    "identify_template",
    # Loader
    "load_templates",
    "parse_templates",
]
