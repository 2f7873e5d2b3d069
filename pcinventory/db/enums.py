# pcinventory/db/enums.py
import enum

# Part related enums
class PartStatus(enum.Enum):
    in_inventory = "in_inventory"
    in_build = "in_build"
    not_in_inventory = "not_in_inventory"


class PartType(enum.Enum):
    CPU = "CPU"
    Cooler = "Cooler"
    Motherboard = "Motherboard"
    RAM = "RAM"
    Storage = "Storage"
    GPU = "GPU"
    Case = "Case"
    PSU = "PSU"
    Other = "Other"


# 构建清单行的固定排序：未识别的类别排在最后
BUILD_LINE_ORDER = {
    "cpu": 0,
    "cooler": 1,
    "motherboard": 2,
    "ram": 3,
    "storage": 4,
    "graphics card": 5,
    "gpu": 5,
    "case": 6,
    "psu": 7,
}

STATUS_LABELS = {
    PartStatus.in_inventory: "In inventory",
    PartStatus.in_build: "In a build",
    PartStatus.not_in_inventory: "Not in inventory",
}

# AuditLog related enums
class AuditEntityType(enum.Enum):
    User = "user"
    Part = "part"
    Build = "build"


class AuditAction(enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    system = "system"


class CollectionKind(enum.Enum):
    parts = "parts"
    builds = "builds"
