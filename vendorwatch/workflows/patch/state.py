from enum import Enum, unique

from vendorwatch.inference.agents.fix_generator.fix_generator import FixGeneratorOutput
from vendorwatch.inference.graph.engine import WorkflowState
from vendorwatch.integrations.source_control import SourceFile
from vendorwatch.schema.changes import ChangeSet


@unique
class PatchStep(Enum):
    LOAD_CODE = "load_code"
    GENERATE_FIX = "generate_fix"
    OPEN_PR = "open_pr"


class PatchState(WorkflowState):
    system_code: str
    change_set: ChangeSet

    file_path: str | None = None
    source_file: SourceFile | None = None
    fix: FixGeneratorOutput | None = None

    branch_name: str | None = None
    pr_url: str | None = None
    pr_number: int | None = None
