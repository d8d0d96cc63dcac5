"""Static reference lists offered to the model alongside the workspace snapshot."""

# Services a project can be staffed with. CREATE_PROJECT infers from this list.
SERVICE_LIST: tuple[str, ...] = (
    "3D Graphic Design",
    "Accommodation",
    "Award Ceremony",
    "Branding",
    "Content Creation",
    "Digital Marketing",
    "Entertainment",
    "Event Decoration",
    "Event Equipment",
    "Event Gamification",
    "Exhibition Booth",
    "Food & Beverage",
    "Keyvisual Graphic Design",
    "LED Display",
    "Lighting System",
    "Logistics",
    "Man Power",
    "Merchandise",
    "Motiongraphic Video",
    "Multimedia System",
    "Payment Advance",
    "Photo Documentation",
    "Plaque & Trophy",
    "Prints",
    "Professional Security",
    "Professional video production for commercial ads",
    "Show Management",
    "Slido",
    "Sound System",
    "Stage Production",
    "Talent",
    "Ticket Management System",
    "Transport",
    "Venue",
    "Video Documentation",
    "VIP Services",
    "Virtual Events",
    "Awards System",
    "Brand Ambassadors",
    "Electricity & Genset",
    "Event Consultation",
    "Workshop",
)

# Icon names the UI can render for goals and folders
ICON_LIST: tuple[str, ...] = (
    "Target", "Flag", "BookOpen", "Dumbbell", "TrendingUp", "Star", "Heart", "Rocket",
    "DollarSign", "FileText", "ImageIcon", "Award", "BarChart", "Calendar", "CheckCircle",
    "Users", "Activity", "Anchor", "Aperture", "Bike", "Briefcase", "Brush", "Camera", "Car",
    "ClipboardCheck", "Cloud", "Code", "Coffee", "Compass", "Cpu", "CreditCard", "Crown",
    "Database", "Diamond", "Feather", "Film", "Flame", "Flower", "Gift", "Globe",
    "GraduationCap", "Headphones", "Home", "Key", "Laptop", "Leaf", "Lightbulb", "Link", "Map",
    "Medal", "Mic", "Moon", "MousePointer", "Music", "Paintbrush", "Palette", "PenTool",
    "Phone", "PieChart", "Plane", "Puzzle", "Save", "Scale", "Scissors", "Settings", "Shield",
    "ShoppingBag", "Smile", "Speaker", "Sun", "Sunrise", "Sunset", "Sword", "Tag", "Trophy",
    "Truck", "Umbrella", "Video", "Wallet", "Watch", "Wind", "Wrench", "Zap",
)

# Colour given to tags created implicitly through add_tags
DEFAULT_TAG_COLOR = "#808080"
