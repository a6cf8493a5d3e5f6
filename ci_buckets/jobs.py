"""Turn buckets into CI job definitions.

A job carries a stable id, display name, description, the subprojects it
runs, extra runner arguments and, for split fragments, a step that writes the
include/exclude filter file before the test run.  The filter file content is
identical on every OS; only the script dialect changes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from .buckets import Bucket, FilterFile
from .model import BuildModel, Os, Stage, TestCoverage

PREPARE_TEST_CLASSES = "PREPARE_TEST_CLASSES"
EXECUTION_MODE_ALWAYS = "ALWAYS"


@dataclass(frozen=True)
class ScriptStep:
    name: str
    execution_mode: str
    script_content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "execution_mode": self.execution_mode,
            "script_content": self.script_content,
        }


@dataclass(frozen=True)
class FunctionalTest:
    id: str
    name: str
    description: str
    test_type: str
    os: str
    stage: str
    subprojects: Tuple[str, ...] = ()
    extra_parameters: str = ""
    pre_build_steps: Tuple[ScriptStep, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "test_type": self.test_type,
            "os": self.os,
            "stage": self.stage,
            "subprojects": list(self.subprojects),
            "extra_parameters": self.extra_parameters,
            "pre_build_steps": [step.to_dict() for step in self.pre_build_steps],
        }


def unix_script(filter_file: FilterFile) -> str:
    action = filter_file.mode.value
    return f"""
mkdir -p build
rm -rf build/*-test-classes.properties
cat > build/{filter_file.file_name} << EOL
{filter_file.render()}
EOL

echo "Tests to be {action}d in this build"
cat build/{filter_file.file_name}
"""


def windows_script(filter_file: FilterFile) -> str:
    action = filter_file.mode.value
    lines_with_echo = "\n".join(f"echo {line}" for line in filter_file.lines)
    return f"""
mkdir build
del /f /q build\\include-test-classes.properties
del /f /q build\\exclude-test-classes.properties
(
{lines_with_echo}
) > build\\{filter_file.file_name}

echo "Tests to be {action}d in this build"
type build\\{filter_file.file_name}
"""


def prepare_test_classes_step(filter_file: FilterFile, os: Os) -> ScriptStep:
    script = windows_script(filter_file) if os is Os.WINDOWS else unix_script(filter_file)
    return ScriptStep(name=PREPARE_TEST_CLASSES, execution_mode=EXECUTION_MODE_ALWAYS, script_content=script)


def materialize(bucket: Bucket, model: BuildModel, stage: Stage, coverage: TestCoverage, bucket_index: int) -> FunctionalTest:
    filter_file = bucket.filter_file()
    steps = (prepare_test_classes_step(filter_file, coverage.os),) if filter_file is not None else ()
    return FunctionalTest(
        id=bucket.job_id(model, coverage, bucket_index),
        name=bucket.name_for(coverage),
        description=bucket.description_for(coverage),
        test_type=coverage.test_type.key,
        os=coverage.os.value,
        stage=stage.name,
        subprojects=bucket.subproject_names(),
        extra_parameters=bucket.extra_parameters(),
        pre_build_steps=steps,
    )


__all__ = [
    "FunctionalTest",
    "ScriptStep",
    "materialize",
    "prepare_test_classes_step",
    "unix_script",
    "windows_script",
]
