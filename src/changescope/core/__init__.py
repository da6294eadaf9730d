"""Change-source classification and change-set resolution."""

from .models import (
    ChangeRequest, MrReference, BranchPair, FileSet, CommitRange, WorkingTree, Branch,
    ChangeStatus, ChangedFile, ChangeSet
)
from .input_classifier import InputClassifier, ClassificationContext, classify
from .base_branch import BaseBranchPolicy, BaseFamily, NamingConvention
from .change_set_resolver import ChangeSetResolver

__all__ = [
    "ChangeRequest", "MrReference", "BranchPair", "FileSet", "CommitRange", "WorkingTree",
    "Branch", "ChangeStatus", "ChangedFile", "ChangeSet",
    "InputClassifier", "ClassificationContext", "classify",
    "BaseBranchPolicy", "BaseFamily", "NamingConvention",
    "ChangeSetResolver",
]
