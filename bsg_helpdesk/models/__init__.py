from bsg_helpdesk.models.organization import Department, Unit
from bsg_helpdesk.models.user import User
from bsg_helpdesk.models.service_catalog import (
    CustomFieldDefinition,
    ServiceCatalog,
    ServiceItem,
    ServiceTemplate,
)
from bsg_helpdesk.models.bsg_template import (
    BSGFieldOption,
    BSGFieldType,
    BSGMasterData,
    BSGTemplate,
    BSGTemplateCategory,
    BSGTemplateField,
    BSGTemplateUsageLog,
)
from bsg_helpdesk.models.ticket import (
    BusinessApproval,
    ClassificationAudit,
    Ticket,
    TicketBSGFieldValue,
    TicketComment,
    TicketFieldValue,
)
from bsg_helpdesk.models.knowledge import (
    KnowledgeArticle,
    KnowledgeArticleFeedback,
    KnowledgeArticleView,
    KnowledgeCategory,
    KnowledgeTicketLink,
)
from bsg_helpdesk.models.asset import (
    Asset,
    AssetContract,
    AssetLocation,
    AssetMaintenance,
    AssetTransfer,
    AssetType,
    TicketAsset,
)
from bsg_helpdesk.models.sla import BusinessHours, Holiday
from bsg_helpdesk.models.cmdb import (
    CIAttribute,
    CIAttributeValue,
    CIChange,
    CIIncident,
    CIRelationship,
    CIType,
    ConfigurationItem,
)

__all__ = [
    "Asset",
    "AssetContract",
    "AssetLocation",
    "AssetMaintenance",
    "AssetTransfer",
    "AssetType",
    "BSGFieldOption",
    "BSGFieldType",
    "BSGMasterData",
    "BSGTemplate",
    "BSGTemplateCategory",
    "BSGTemplateField",
    "BSGTemplateUsageLog",
    "BusinessApproval",
    "BusinessHours",
    "CIAttribute",
    "CIAttributeValue",
    "CIChange",
    "CIIncident",
    "CIRelationship",
    "CIType",
    "ClassificationAudit",
    "ConfigurationItem",
    "CustomFieldDefinition",
    "Department",
    "Holiday",
    "KnowledgeArticle",
    "KnowledgeArticleFeedback",
    "KnowledgeArticleView",
    "KnowledgeCategory",
    "KnowledgeTicketLink",
    "ServiceCatalog",
    "ServiceItem",
    "ServiceTemplate",
    "Ticket",
    "TicketAsset",
    "TicketBSGFieldValue",
    "TicketComment",
    "TicketFieldValue",
    "Unit",
    "User",
]
