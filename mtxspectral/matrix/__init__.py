from .collectors import ColCounterOnValidRows, ColStatCollector, RowStatCollector, axis_sd, axis_variance
from .copiers import RemappedColumnsReader, RowRemappedCopier, TripletCopier, TripletReader, write_header
from .scanner import ScanState, ScanSummary, TripletScanner, visit_triplet_file, visit_triplet_stream
from .visitors import Dimensions, Triplet, TripletVisitor

__all__ = [
    "ColCounterOnValidRows",
    "ColStatCollector",
    "RowStatCollector",
    "axis_sd",
    "axis_variance",
    "RemappedColumnsReader",
    "RowRemappedCopier",
    "TripletCopier",
    "TripletReader",
    "write_header",
    "ScanState",
    "ScanSummary",
    "TripletScanner",
    "visit_triplet_file",
    "visit_triplet_stream",
    "Dimensions",
    "Triplet",
    "TripletVisitor",
]
